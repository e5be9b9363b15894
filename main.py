import subprocess
import sys
from typing import Optional

import typer

from config import settings
from database import StoreError, create_store
from library import Library
from seed import SeedDisabledError, seed_dev_data
from utils.ui_helpers import print_list_result, print_seed_report, set_output_mode

APP_NAME = "Library CLI"


class LibraryManager:
    """Lazily created Library shared by the commands of one CLI run."""

    _instance: Optional[Library] = None

    @classmethod
    def get_instance(cls) -> Library:
        if cls._instance is None:
            cls._instance = Library(create_store())
        return cls._instance


# --- Typer CLI Application ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    if output:
        set_output_mode(output)


@app.command("list")
def cli_list():
    """List every book with its author."""
    try:
        books = LibraryManager.get_instance().list_books()
    except StoreError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print_list_result(books)


@app.command("add")
def cli_add(title: str, author: str):
    """Add a book, creating its author if needed."""
    try:
        book = LibraryManager.get_instance().add_book(title, author)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    except StoreError as e:
        print(f"Store error: {e}")
        raise typer.Exit(code=1)
    print(f"Successfully added: {book.title} by {book.author.name} (id {book.id})")


@app.command("seed")
def cli_seed():
    """Load the development accounts and sample books (dev only)."""
    try:
        report = seed_dev_data(LibraryManager.get_instance())
    except SeedDisabledError as e:
        print(f"Seed refused: {e}")
        raise typer.Exit(code=2)
    except StoreError as e:
        print(f"Store error: {e}")
        raise typer.Exit(code=1)
    print_seed_report(report)


@app.command("init-db")
def cli_init_db():
    """Create the graph constraints the catalog relies on."""
    try:
        LibraryManager.get_instance().store.ensure_constraints()
    except StoreError as e:
        print(f"Store error: {e}")
        raise typer.Exit(code=1)
    print("Constraints ensured.")


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", help="Port (default: API_PORT)"),
):
    """Start the API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    subprocess.run(args)


if __name__ == "__main__":
    app()
