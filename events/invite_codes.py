# events/invite_codes.py
"""
Invite Code Registry.

An invite code is the public handle of one team roster. Codes are short
(8 chars), upper-case base36/hex, and never reused: a retired team keeps its
code so a stale link can't land a student on somebody else's team.
"""
import itertools
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction

from core.exceptions import Conflict, NotFound
from .models import Event, GameType, Team

logger = logging.getLogger('cos.events.teams')

CODE_LENGTH = 8
_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_counter = itertools.count()


def _base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits)) or "0"


def generate() -> str:
    """
    Time prefix (3) + random hex (4) + rolling counter (1).

    Not guaranteed unique on its own; use `allocate` to persist one.
    """
    prefix = _base36(int(time.time() * 1000))[-3:]
    suffix = secrets.token_hex(2).upper()
    tick = _ALPHABET[next(_counter) % 36]
    return f"{prefix}{suffix}{tick}"[:CODE_LENGTH]


def normalize(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def allocate(create: Callable[[str], Team], max_retries: Optional[int] = None) -> Team:
    """
    Call `create(code)` with fresh codes until one sticks.

    Each attempt runs in its own savepoint so a unique-index collision
    doesn't poison the surrounding transaction.
    """
    if max_retries is None:
        max_retries = getattr(settings, "REGISTRATION", {}).get("INVITE_CODE_MAX_RETRIES", 5)

    for attempt in range(1, max_retries + 1):
        code = generate()
        if Team.objects.filter(invite_code=code).exists():
            logger.warning(f"Invite code collision on attempt {attempt}: {code}")
            continue
        try:
            with transaction.atomic():
                return create(code)
        except IntegrityError:
            logger.warning(f"Invite code insert collided on attempt {attempt}: {code}")

    logger.error(f"Could not allocate an invite code after {max_retries} attempts")
    raise Conflict("Could not allocate an invite code, please retry", code="invite_code_exhausted")


@dataclass
class MemberView:
    student_id: int
    name: str
    run_order: int
    is_captain: bool


@dataclass
class TeamView:
    """Read-side snapshot of one team. May be stale by the time it's used."""
    team: Team
    event: Event
    game_type: GameType
    invite_code: str
    name: str
    capacity: int
    member_count: int
    status: str
    members: List[MemberView] = field(default_factory=list)
    creator_student_id: Optional[int] = None

    @property
    def is_full(self):
        return self.member_count >= self.capacity

    def has_member(self, student) -> bool:
        student_id = getattr(student, "pk", student)
        return any(m.student_id == student_id for m in self.members)


def resolve(code: str, event: Optional[Event] = None, game_type: Optional[GameType] = None) -> TeamView:
    """
    Look a live team up by invite code. Retired and unknown codes raise NotFound.

    `creator_student_id` reports the current captain; captaincy moves when the
    original creator leaves.
    """
    code = normalize(code)
    if not code:
        raise NotFound("Invite code not found", code="invite_not_found")

    qs = Team.objects.select_related("event", "game_type").filter(invite_code=code)
    if event is not None:
        qs = qs.filter(event=event)
    if game_type is not None:
        qs = qs.filter(game_type=game_type)

    team = qs.exclude(status=Team.STATUS_RETIRED).first()
    if team is None:
        raise NotFound("Invite code not found", code="invite_not_found")

    members = [
        MemberView(
            student_id=m.student_id,
            name=m.student.display_name,
            run_order=m.run_order,
            is_captain=m.is_captain,
        )
        for m in team.members.select_related("student").order_by("run_order")
    ]
    captain = next((m for m in members if m.is_captain), None)

    return TeamView(
        team=team,
        event=team.event,
        game_type=team.game_type,
        invite_code=team.invite_code,
        name=team.name,
        capacity=team.capacity,
        member_count=len(members),
        status=team.status,
        members=members,
        creator_student_id=captain.student_id if captain else None,
    )
