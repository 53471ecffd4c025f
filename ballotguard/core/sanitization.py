"""Input sanitization utilities.

Used by the request schemas; every function raises ``ValueError`` so pydantic
reports the offending field.
"""
import re
from typing import Optional


MAX_TITLE_LENGTH = 200
MAX_NAME_LENGTH = 200
MAX_VOTER_ID_LENGTH = 50


def sanitize_text(text: str, max_length: Optional[int] = None, strip_html: bool = True) -> str:
    """
    Strip HTML tags and normalize whitespace.

    Args:
        text: The input text to sanitize
        max_length: Optional maximum length to enforce
        strip_html: Whether to strip HTML tags (default True)

    Raises:
        ValueError: If text exceeds max_length or still looks like markup
    """
    if not isinstance(text, str):
        raise ValueError("Input must be a string")

    sanitized = text.strip()

    if max_length and len(sanitized) > max_length:
        raise ValueError(f"Input exceeds maximum length of {max_length} characters")

    if strip_html:
        sanitized = re.sub(r'<[^>]*>', '', sanitized)

    # Malformed or encoded tags survive the strip above
    if '<' in sanitized or '>' in sanitized:
        raise ValueError("Input contains invalid HTML-like patterns")

    return re.sub(r'\s+', ' ', sanitized)


def sanitize_title(title: str) -> str:
    """Sanitize an election or position title."""
    sanitized = sanitize_text(title, max_length=MAX_TITLE_LENGTH)
    if not sanitized:
        raise ValueError("Title cannot be empty")
    return sanitized


def sanitize_name(name: str) -> str:
    """Sanitize a candidate or voter display name."""
    sanitized = sanitize_text(name, max_length=MAX_NAME_LENGTH)
    if not sanitized:
        raise ValueError("Name cannot be empty")
    return sanitized


def sanitize_voter_id(voter_id: str) -> str:
    """
    Validate and canonicalize a public voter identifier.

    Voter ids are letters and digits (hyphens allowed), compared uppercase,
    e.g. ``VOTER12345``. Rejecting malformed ids early avoids pointless
    database round trips on the ballot path.
    """
    if not isinstance(voter_id, str):
        raise ValueError("Voter ID must be a string")

    sanitized = voter_id.strip().upper()

    if not sanitized:
        raise ValueError("Voter ID cannot be empty")

    if len(sanitized) > MAX_VOTER_ID_LENGTH:
        raise ValueError(f"Voter ID exceeds maximum length of {MAX_VOTER_ID_LENGTH} characters")

    if not re.match(r'^[A-Z0-9-]+$', sanitized):
        raise ValueError("Voter ID can only contain letters, numbers, and hyphens")

    return sanitized
