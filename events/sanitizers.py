# events/sanitizers.py
"""
Input sanitization for registration data.

Team names, group labels and imported cells pass through these functions
before being stored.
"""
import re
from typing import Optional

from core.exceptions import RegistrationValidationError


TEAM_NAME_MAX_LENGTH = 100


def sanitize_text(text: Optional[str], max_length: Optional[int] = None, strip: bool = True) -> str:
    """
    Sanitize plain text input.

    - Strips leading/trailing whitespace
    - Removes control characters
    - Enforces maximum length
    - Returns empty string for None input
    """
    if text is None:
        return ""

    text = str(text)
    if strip:
        text = text.strip()

    # Remove control characters except newlines and tabs
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)

    if max_length and len(text) > max_length:
        text = text[:max_length]

    return text


def sanitize_title(title: Optional[str], max_length: int = 255) -> str:
    """
    Single-line names (teams, groups, game types).

    - No newlines
    - Whitespace collapsed
    """
    text = sanitize_text(title, max_length=max_length)
    text = re.sub(r'[\r\n]+', ' ', text)
    text = re.sub(r'\s+', ' ', text)
    return text


def validate_team_name(name: Optional[str]) -> str:
    cleaned = sanitize_title(name, max_length=TEAM_NAME_MAX_LENGTH)
    if not cleaned:
        raise RegistrationValidationError("Team name cannot be empty", code="invalid_team_name")
    return cleaned
