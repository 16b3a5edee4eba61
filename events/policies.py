# events/policies.py
"""
Centralized Registration Policy Layer

Permission checks for registration and team actions live here.
Views and the team engine use these instead of inline permission logic.
"""
from typing import Tuple

from .datetime_utils import is_registration_open
from .models import Event, EventRegistration, Team, TeamMember


class RegistrationPolicy:
    """
    All methods return bool or (bool, str) with reason.
    """

    @staticmethod
    def is_coach(user) -> bool:
        """Coaches, admins and superusers manage events."""
        if not user or not user.is_authenticated:
            return False
        return user.is_coach

    @staticmethod
    def is_captain(user, team: Team) -> bool:
        if not user or not user.is_authenticated or team is None:
            return False
        return TeamMember.objects.filter(team=team, student=user, is_captain=True).exists()

    # ─────────────────────────────────────────────────────────────
    # Registration window
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def can_mutate_registration(user, event: Event) -> Tuple[bool, str]:
        """Students may only change registrations while the window is open."""
        if not user or not user.is_authenticated:
            return False, "Authentication required"

        if is_registration_open(event):
            return True, ""

        if RegistrationPolicy.is_coach(user):
            return True, ""

        return False, "Registration is closed for this event"

    # ─────────────────────────────────────────────────────────────
    # Event management
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def can_manage_event(user, event: Event) -> Tuple[bool, str]:
        """List, export and import registrations."""
        if not user or not user.is_authenticated:
            return False, "Authentication required"

        if RegistrationPolicy.is_coach(user):
            return True, ""

        return False, "Only coaches can manage registrations for this event"

    @staticmethod
    def can_cancel_registration(user, registration: EventRegistration) -> Tuple[bool, str]:
        if not user or not user.is_authenticated:
            return False, "Authentication required"

        if registration.student_id == user.id:
            return True, ""

        if RegistrationPolicy.is_coach(user):
            return True, ""

        return False, "You can only cancel your own registration"

    # ─────────────────────────────────────────────────────────────
    # Teams
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def can_manage_team(user, team: Team) -> Tuple[bool, str]:
        """Rename the team or hand over the captaincy."""
        if not user or not user.is_authenticated:
            return False, "Authentication required"

        if RegistrationPolicy.is_coach(user):
            return True, ""

        if RegistrationPolicy.is_captain(user, team):
            return True, ""

        return False, "Only the team captain can manage this team"
