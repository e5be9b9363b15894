import json
import os
from typing import Any, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Environment variable controlling CLI output: plain (default), json or rich
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _author_name(book: Any) -> str:
    author = getattr(book, "author", None)
    return getattr(author, "name", "") if author else ""


def print_list_result(books: List[Any]) -> None:
    """Print books in the current output mode.
    - plain: 'ID - Title by Author' lines, or 'No books in library.'
    - json: array of {id, title, author: {id, name}}
    - rich: a Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        for b in books:
            table.add_row(str(b.id), b.title, _author_name(b))
        _console.print(table)
    else:
        for b in books:
            print(f"{b.id} - {b.title} by {_author_name(b)}")


def print_seed_report(report: Any) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps({
            "users_removed": report.users_removed,
            "users_created": report.users_created,
            "books_created": report.books_created,
        }, ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Users removed:[/] {report.users_removed}\n"
            f"[bold]Users created:[/] {', '.join(report.users_created) or '-'}\n"
            f"[bold]Books created:[/] {', '.join(report.books_created) or '-'}"
        )
        _console.print(Panel.fit(content, title="🌱 Seed", border_style="green"))
    else:
        print(f"Users removed: {report.users_removed}")
        print(f"Users created: {', '.join(report.users_created) or '-'}")
        print(f"Books created: {', '.join(report.books_created) or '-'}")
