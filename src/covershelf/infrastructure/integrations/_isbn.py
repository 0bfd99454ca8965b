"""ISBN cleanup shared by the cover providers."""

import re

_ISBN_CHARS = re.compile(r"[^0-9Xx]")
_ISBN = re.compile(r"\d{9}[\dX]|\d{13}")


def clean_isbn(isbn: str | None) -> str | None:
    """Strip dashes/spaces and upper-case the check digit. None if it isn't an ISBN."""
    if not isbn:
        return None
    cleaned = _ISBN_CHARS.sub("", isbn).upper()
    return cleaned if _ISBN.fullmatch(cleaned) else None
