from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework import status
import logging

logger = logging.getLogger(__name__)


class RegistrationError(APIException):
    """
    Base for typed registration/team errors.

    `code` is the stable machine-readable reason ("team_full",
    "registration_closed", ...); `detail` is the user-facing message.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Registration request failed."
    default_code = "registration_error"

    def __init__(self, detail=None, code=None):
        super().__init__(detail=detail, code=code)
        self.code = code or self.default_code


class NotFound(RegistrationError):
    """Unknown invite code, event, registration or student."""
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class Conflict(RegistrationError):
    """Team full, duplicate active entry, or a membership that needs a switch."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"


class RegistrationValidationError(RegistrationError):
    """Registration window closed, bad team size, invalid run order state."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid registration request."
    default_code = "invalid"


def custom_exception_handler(exc, context):
    """
    Wrap DRF + Django exceptions into a consistent response format.

    Success responses (2xx) are not touched.
    Only errors come through here.
    """
    response = drf_exception_handler(exc, context)

    # If DRF handled it, wrap it
    if response is not None:
        errors = response.data
        if isinstance(exc, RegistrationError):
            errors = {"detail": str(exc.detail), "code": exc.code}
        return Response(
            {
                "success": False,
                "status_code": response.status_code,
                "errors": errors,
            },
            status=response.status_code,
            headers=dict(response.items()),
        )

    # Unhandled exceptions -> 500
    logger.exception("Unhandled API exception", exc_info=exc)

    return Response(
        {
            "success": False,
            "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "errors": {"detail": "Internal server error."},
        },
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
