from typing import Optional


class TextValidator:
    """Basic checks for the free-text fields of a new book.

    Values are only checked, never rewritten: author names are matched
    exactly, so trimming here would change which author a book lands under.
    """

    @staticmethod
    def _is_non_blank(text: Optional[str]) -> bool:
        if text is None or not isinstance(text, str):
            return False
        return bool(text.strip())

    @staticmethod
    def validate_title(title: Optional[str]) -> bool:
        return TextValidator._is_non_blank(title)

    @staticmethod
    def validate_author(author: Optional[str]) -> bool:
        return TextValidator._is_non_blank(author)
