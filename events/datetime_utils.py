# events/datetime_utils.py
"""
Centralized datetime handling for the registration subsystem.

Registration windows are compared against these helpers only, so tests can
pin "now" in one place.
"""
from datetime import datetime
from typing import Optional
from django.utils import timezone


def now() -> datetime:
    """
    Get current datetime (timezone-aware when USE_TZ=True).
    """
    return timezone.now()


def is_event_past(event) -> bool:
    """Check if event has ended."""
    if not event.end_date:
        return False
    return event.end_date < now()


def is_registration_open(event, at: Optional[datetime] = None) -> bool:
    """
    Registration is open if the event's open flag is set and the event
    hasn't ended yet.
    """
    if not event.open_registration:
        return False

    current = at or now()
    if event.end_date and current > event.end_date:
        return False

    return True


def format_for_api(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat()
