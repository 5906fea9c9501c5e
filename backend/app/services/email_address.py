"""Email address helpers shared by the check and registration routes."""

import re

# One "@", no whitespace, a dot somewhere in the domain. Always applied
# with fullmatch, so a trailing newline cannot slip past the end anchor.
EMAIL_REGEX = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


def is_valid_email_format(email: str) -> bool:
    return EMAIL_REGEX.fullmatch(email) is not None


def email_domain(email: str) -> str:
    """Lowercased part after the first "@" ("" when there is none)."""
    _, sep, domain = email.partition("@")
    return domain.lower() if sep else ""
