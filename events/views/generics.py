from rest_framework.response import Response
from rest_framework import status

from events.catalog import get_event
from events.policies import RegistrationPolicy


def api_error(message: str, status_code=status.HTTP_400_BAD_REQUEST, code: str = "error"):
    """
    Small helper to standardize error responses across the events app.
    Same envelope the exception handler produces for raised errors.
    """
    return Response(
        {
            "success": False,
            "status_code": status_code,
            "errors": {"detail": message, "code": code},
        },
        status=status_code,
    )


def get_event_or_404(event_id):
    """Raises core.exceptions.NotFound, rendered by the exception handler."""
    return get_event(event_id)


def registration_window_error(user, event):
    """
    Gateway-side window check for student mutations. Returns an error
    Response, or None when the call may proceed.
    """
    allowed, reason = RegistrationPolicy.can_mutate_registration(user, event)
    if allowed:
        return None
    return api_error(reason, status.HTTP_400_BAD_REQUEST, code="registration_closed")
