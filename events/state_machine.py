# events/state_machine.py
"""
Team State Machine.

    forming ⇄ full
       └──────┴──→ retired

A team's status is a function of its member count; the engine recomputes it
after every write and moves the team through `transition`. Retired is
terminal: a retired invite code is never resolved again.
"""
from typing import Tuple
import logging

from django.utils import timezone

from .models import Team

logger = logging.getLogger('cos.events.teams')


# Valid state transitions: from_status -> list of allowed to_statuses
VALID_TRANSITIONS = {
    Team.STATUS_FORMING: [Team.STATUS_FULL, Team.STATUS_RETIRED],
    Team.STATUS_FULL: [Team.STATUS_FORMING, Team.STATUS_RETIRED],
    Team.STATUS_RETIRED: [],
}


def status_for_count(member_count: int, capacity: int) -> str:
    if member_count <= 0:
        return Team.STATUS_RETIRED
    if member_count >= capacity:
        return Team.STATUS_FULL
    return Team.STATUS_FORMING


def can_transition(team: Team, new_status: str) -> Tuple[bool, str]:
    """
    Check if a team can transition to a new status.

    Returns (can_transition: bool, reason: str)
    """
    current_status = team.status

    if new_status == current_status:
        return True, "Same status"

    if new_status not in dict(Team.STATUS_CHOICES):
        return False, f"Invalid status: {new_status}"

    if new_status not in VALID_TRANSITIONS.get(current_status, []):
        return False, f"Cannot transition from '{current_status}' to '{new_status}'"

    return True, ""


def transition(team: Team, new_status: str, actor=None, save: bool = True) -> Tuple[bool, str]:
    """
    Attempt to move a team to a new status. Retiring stamps retired_at.

    Returns (success: bool, message: str)
    """
    can, reason = can_transition(team, new_status)

    if not can:
        logger.warning(
            f"Invalid team transition attempted: team={team.id}, "
            f"from={team.status}, to={new_status}, actor={getattr(actor, 'id', 'unknown')}. "
            f"Reason: {reason}"
        )
        return False, reason

    old_status = team.status
    if old_status == new_status:
        return True, reason

    team.status = new_status
    update_fields = ['status']
    if new_status == Team.STATUS_RETIRED:
        team.retired_at = timezone.now()
        update_fields.append('retired_at')

    if save:
        team.save(update_fields=update_fields)

    logger.info(
        f"Team state transition: team={team.id}, code={team.invite_code}, "
        f"from={old_status}, to={new_status}, actor={getattr(actor, 'id', 'unknown')}"
    )

    return True, f"Transitioned from '{old_status}' to '{new_status}'"


def sync_status(team: Team, actor=None) -> Tuple[bool, str]:
    """Move the team to the status its current member_count implies."""
    return transition(team, status_for_count(team.member_count, team.capacity), actor=actor)


def is_terminal_status(status: str) -> bool:
    return status not in VALID_TRANSITIONS or len(VALID_TRANSITIONS[status]) == 0
