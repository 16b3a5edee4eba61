# events/team_engine.py
"""
Team Formation Engine.

Create, join, switch and leave relay/team rosters while keeping the team
invariants intact:

- member_count never exceeds capacity. A join claims its slot with one
  conditional UPDATE (member_count < capacity), so of two racing joins for
  the last slot exactly one wins and the other gets Conflict("team_full").
- A non-empty team has exactly one captain. When the captain leaves, the
  member with the lowest run_order takes over.
- run_order comes from last_run_order + 1 and is never recycled.
- A team whose last member leaves is retired and its code stops resolving.

A switch claims the new slot before releasing the old one, inside a single
transaction, so a failed switch leaves the original membership untouched.
"""
import logging

from django.db import IntegrityError, transaction
from django.db.models import F
from rest_framework.exceptions import PermissionDenied

from core.constants import (
    ACTIVITY_ENTRY_WITHDRAWN,
    ACTIVITY_REGISTRATION_CANCELLED,
    ACTIVITY_REGISTRATION_CREATED,
    ACTIVITY_REGISTRATION_UPDATED,
    ACTIVITY_TEAM_CAPTAIN_TRANSFERRED,
    ACTIVITY_TEAM_CREATED,
    ACTIVITY_TEAM_JOINED,
    ACTIVITY_TEAM_LEFT,
    ACTIVITY_TEAM_RENAMED,
    ACTIVITY_TEAM_RETIRED,
    ACTIVITY_TEAM_SWITCHED,
)
from core.exceptions import Conflict, NotFound, RegistrationValidationError
from core.services import ActivityService
from . import invite_codes
from .catalog import get_game_type, team_capacity
from .datetime_utils import is_registration_open
from .invite_codes import resolve
from .models import EventRegistration, GameTypeEntry, Team, TeamMember
from .policies import RegistrationPolicy
from .registration_store import RegistrationStore
from .sanitizers import sanitize_title, validate_team_name
from .state_machine import status_for_count, sync_status

logger = logging.getLogger('cos.events.teams')


CALLER_MEMBER = "member"
CALLER_SWITCH_REQUIRED = "switch_required"
CALLER_TEAM_FULL = "team_full"
CALLER_CAN_JOIN = "can_join"
CALLER_REGISTRATION_CLOSED = "registration_closed"


class TeamFormationEngine:

    def __init__(self, store=None):
        self.store = store or RegistrationStore()

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def _ensure_open(event):
        if not is_registration_open(event):
            raise RegistrationValidationError(
                "Registration is closed for this event", code="registration_closed"
            )

    @staticmethod
    def _lock_team(team_id) -> Team:
        team = Team.objects.select_for_update().filter(pk=team_id).first()
        if team is None or team.is_retired:
            raise NotFound("Invite code not found", code="invite_not_found")
        return team

    @staticmethod
    def _default_group(team: Team) -> str:
        """New members run in the captain's group unless they say otherwise."""
        captain = TeamMember.objects.filter(team=team, is_captain=True).first()
        if captain is None:
            return ""
        group = (
            GameTypeEntry.objects
            .filter(team=team, is_active=True, registration__student_id=captain.student_id)
            .values_list("group", flat=True)
            .first()
        )
        return group or ""

    def _claim_slot(self, team: Team, student) -> TeamMember:
        """
        Take one seat on the team, or raise Conflict("team_full").

        The capacity check and the increment are the same UPDATE statement;
        a racing writer re-evaluates the WHERE clause after the winner
        commits and updates zero rows.
        """
        claimed = (
            Team.objects
            .filter(pk=team.pk, member_count__lt=F("capacity"))
            .exclude(status=Team.STATUS_RETIRED)
            .update(
                member_count=F("member_count") + 1,
                last_run_order=F("last_run_order") + 1,
                version=F("version") + 1,
            )
        )
        if not claimed:
            current = Team.objects.filter(pk=team.pk).first()
            if current is None or current.is_retired:
                raise NotFound("Invite code not found", code="invite_not_found")
            logger.warning(
                f"Join rejected, team full: team={team.id}, code={team.invite_code}, "
                f"student={student.id}, members={current.member_count}/{current.capacity}"
            )
            raise Conflict("Team is full", code="team_full")

        team.refresh_from_db(fields=["member_count", "last_run_order", "version", "status", "capacity"])
        try:
            with transaction.atomic():
                member = TeamMember.objects.create(
                    team=team,
                    student=student,
                    run_order=team.last_run_order,
                    is_captain=False,
                )
        except IntegrityError:
            raise Conflict("Already a member of this team", code="already_member")

        sync_status(team, actor=student)
        return member

    def _remove_member(self, team: Team, member: TeamMember, actor=None):
        """
        Drop a member from a locked team. Hands the captaincy to the lowest
        run_order when the captain leaves and retires an emptied team.

        Returns the promoted TeamMember, if any.
        """
        was_captain = member.is_captain
        member.delete()

        remaining = TeamMember.objects.filter(team=team).count()
        Team.objects.filter(pk=team.pk).update(member_count=remaining, version=F("version") + 1)
        team.refresh_from_db(fields=["member_count", "version", "status"])

        promoted = None
        if was_captain and remaining:
            promoted = TeamMember.objects.filter(team=team).order_by("run_order").first()
            promoted.is_captain = True
            promoted.save(update_fields=["is_captain"])
            logger.info(
                f"Captain transferred on leave: team={team.id}, to_student={promoted.student_id}"
            )

        sync_status(team, actor=actor)

        if team.is_retired:
            ActivityService.log_activity(
                actor=actor,
                verb=ACTIVITY_TEAM_RETIRED,
                target=team,
                event=team.event,
                metadata={"invite_code": team.invite_code, "team_name": team.name},
            )
        return promoted

    # ─────────────────────────────────────────────────────────────
    # Read side
    # ─────────────────────────────────────────────────────────────

    def caller_status(self, view, student) -> str:
        if view.has_member(student):
            return CALLER_MEMBER
        if not is_registration_open(view.event):
            return CALLER_REGISTRATION_CLOSED
        entry = self.store.active_entry(student, view.event, view.game_type)
        if entry is not None and entry.team_id:
            return CALLER_SWITCH_REQUIRED
        if view.is_full:
            return CALLER_TEAM_FULL
        return CALLER_CAN_JOIN

    # ─────────────────────────────────────────────────────────────
    # Team lifecycle
    # ─────────────────────────────────────────────────────────────

    def create_team(self, student, event, game_type_name, team_name=None, group="", difficulty_grade=""):
        game_type = get_game_type(event, game_type_name)
        capacity = team_capacity(game_type)
        self._ensure_open(event)
        name = validate_team_name(team_name) if team_name else f"{game_type.name}队伍"
        group = sanitize_title(group, max_length=64)

        with transaction.atomic():
            registration, _ = self.store.get_or_create_registration(student, event)
            entry = self.store.active_entry(student, event, game_type, lock=True)
            if entry is not None and entry.team_id:
                raise Conflict(
                    f"Already on a team for '{game_type.name}', switch teams instead",
                    code="switch_required",
                )

            team = invite_codes.allocate(
                lambda code: Team.objects.create(
                    event=event,
                    game_type=game_type,
                    name=name,
                    invite_code=code,
                    creator=student,
                    capacity=capacity,
                    member_count=1,
                    last_run_order=1,
                    version=1,
                    status=status_for_count(1, capacity),
                )
            )
            TeamMember.objects.create(team=team, student=student, run_order=1, is_captain=True)

            if entry is not None:
                entry.team = team
                entry.group = group or entry.group
                entry.save(update_fields=["team", "group"])
            else:
                self.store.add_entry(registration, game_type, group, difficulty_grade, team=team)

            ActivityService.log_activity(
                actor=student,
                verb=ACTIVITY_TEAM_CREATED,
                target=team,
                event=event,
                metadata={"invite_code": team.invite_code, "team_name": team.name, "game_type": game_type.name},
            )

        logger.info(
            f"Team created: team={team.id}, code={team.invite_code}, event={event.id}, "
            f"game_type={game_type.name}, captain={student.id}, capacity={capacity}"
        )
        return registration, team

    def join_team(self, student, invite_code, group=None, difficulty_grade=""):
        view = resolve(invite_code)
        team, event, game_type = view.team, view.event, view.game_type
        self._ensure_open(event)

        if view.has_member(student):
            raise Conflict("Already a member of this team", code="already_member")
        if view.is_full:
            raise Conflict("Team is full", code="team_full")

        with transaction.atomic():
            registration, _ = self.store.get_or_create_registration(student, event)
            entry = self.store.active_entry(student, event, game_type, lock=True)
            if entry is not None and entry.team_id == team.id:
                raise Conflict("Already a member of this team", code="already_member")
            if entry is not None and entry.team_id:
                raise Conflict(
                    f"Already on a team for '{game_type.name}', switch teams instead",
                    code="switch_required",
                )

            member = self._claim_slot(team, student)

            if entry is not None:
                entry.team = team
                if group:
                    entry.group = sanitize_title(group, max_length=64)
                entry.save(update_fields=["team", "group"])
            else:
                group = sanitize_title(group, max_length=64) if group else self._default_group(team)
                self.store.add_entry(registration, game_type, group, difficulty_grade, team=team)

            ActivityService.log_activity(
                actor=student,
                verb=ACTIVITY_TEAM_JOINED,
                target=team,
                event=event,
                metadata={"invite_code": team.invite_code, "run_order": member.run_order},
            )

        logger.info(
            f"Team joined: team={team.id}, code={team.invite_code}, student={student.id}, "
            f"run_order={member.run_order}"
        )
        return registration

    def switch_team(self, student, new_code, old_code=None):
        """
        Move a student from their current team to the team behind `new_code`.

        Without `old_code` the current team is the one for the same game type.
        A student with no team to leave simply joins.
        """
        new_view = resolve(new_code)
        new_team, event = new_view.team, new_view.event
        self._ensure_open(event)

        if old_code:
            old_team = resolve(old_code).team
        else:
            current = (
                TeamMember.objects
                .filter(student=student, team__event=event, team__game_type=new_team.game_type)
                .exclude(team__status=Team.STATUS_RETIRED)
                .select_related("team")
                .first()
            )
            if current is None:
                return self.join_team(student, new_code)
            old_team = current.team

        if old_team.pk == new_team.pk:
            raise Conflict("Already a member of this team", code="already_member")
        if old_team.event_id != new_team.event_id:
            raise RegistrationValidationError(
                "Teams belong to different events", code="cross_event_switch"
            )

        with transaction.atomic():
            # Lock both rosters in pk order so opposite switches can't deadlock
            locked = {
                t.pk: t
                for t in Team.objects.select_for_update().filter(pk__in=[old_team.pk, new_team.pk]).order_by("pk")
            }
            old_team, new_team = locked.get(old_team.pk), locked.get(new_team.pk)
            if new_team is None or new_team.is_retired or old_team is None or old_team.is_retired:
                raise NotFound("Invite code not found", code="invite_not_found")

            old_member = TeamMember.objects.filter(team=old_team, student=student).first()
            if old_member is None:
                raise RegistrationValidationError(
                    "You are not a member of this team", code="not_a_member"
                )
            old_entry = self.store.active_entry(student, event, old_team.game_type, lock=True)

            same_game_type = old_team.game_type_id == new_team.game_type_id
            other = None
            if not same_game_type:
                other = self.store.active_entry(student, event, new_team.game_type, lock=True)
                if other is not None and other.team_id:
                    raise Conflict(
                        f"Already on a team for '{new_team.game_type.name}'", code="switch_required"
                    )

            # New seat first; a full team aborts here with the old seat intact
            new_member = self._claim_slot(new_team, student)
            self._remove_member(old_team, old_member, actor=student)

            registration = self.store.get_registration(student, event)
            if same_game_type and old_entry is not None:
                old_entry.team = new_team
                old_entry.save(update_fields=["team"])
            else:
                group = old_entry.group if old_entry else self._default_group(new_team)
                if old_entry is not None:
                    self.store.deactivate_entry(old_entry)
                if other is not None:
                    other.team = new_team
                    other.save(update_fields=["team"])
                else:
                    self.store.add_entry(registration, new_team.game_type, group, team=new_team)

            ActivityService.log_activity(
                actor=student,
                verb=ACTIVITY_TEAM_SWITCHED,
                target=new_team,
                event=event,
                metadata={
                    "from_invite_code": old_team.invite_code,
                    "to_invite_code": new_team.invite_code,
                    "run_order": new_member.run_order,
                },
            )

        logger.info(
            f"Team switched: student={student.id}, from={old_team.invite_code}, "
            f"to={new_team.invite_code}, run_order={new_member.run_order}"
        )
        return registration

    def leave_team(self, student, invite_code):
        view = resolve(invite_code)
        event = view.event

        with transaction.atomic():
            team = self._lock_team(view.team.pk)
            member = TeamMember.objects.filter(team=team, student=student).first()
            if member is None:
                raise RegistrationValidationError(
                    "You are not a member of this team", code="not_a_member"
                )

            entry = self.store.active_entry(student, event, team.game_type, lock=True)
            promoted = self._remove_member(team, member, actor=student)
            if entry is not None and entry.team_id == team.id:
                self.store.deactivate_entry(entry)

            ActivityService.log_activity(
                actor=student,
                verb=ACTIVITY_TEAM_LEFT,
                target=team,
                event=event,
                metadata={
                    "invite_code": team.invite_code,
                    "new_captain": promoted.student_id if promoted else None,
                    "retired": team.is_retired,
                },
            )

        logger.info(
            f"Team left: team={team.id}, code={team.invite_code}, student={student.id}, "
            f"remaining={team.member_count}"
        )
        return team

    def transfer_captain(self, actor, invite_code, new_captain_id):
        view = resolve(invite_code)
        allowed, reason = RegistrationPolicy.can_manage_team(actor, view.team)
        if not allowed:
            raise PermissionDenied(reason)

        with transaction.atomic():
            team = self._lock_team(view.team.pk)
            target = TeamMember.objects.filter(team=team, student_id=new_captain_id).first()
            if target is None:
                raise RegistrationValidationError(
                    "That student is not a member of this team", code="not_a_member"
                )
            if target.is_captain:
                return team

            previous = TeamMember.objects.filter(team=team, is_captain=True).first()
            if previous is not None:
                previous.is_captain = False
                previous.save(update_fields=["is_captain"])
            target.is_captain = True
            target.save(update_fields=["is_captain"])
            Team.objects.filter(pk=team.pk).update(version=F("version") + 1)

            ActivityService.log_activity(
                actor=actor,
                verb=ACTIVITY_TEAM_CAPTAIN_TRANSFERRED,
                target=team,
                event=team.event,
                metadata={
                    "from_student": previous.student_id if previous else None,
                    "to_student": target.student_id,
                },
            )

        logger.info(
            f"Captain transferred: team={team.id}, to_student={new_captain_id}, actor={actor.id}"
        )
        return team

    def rename_team(self, actor, invite_code, team_name):
        view = resolve(invite_code)
        allowed, reason = RegistrationPolicy.can_manage_team(actor, view.team)
        if not allowed:
            raise PermissionDenied(reason)
        name = validate_team_name(team_name)

        with transaction.atomic():
            team = self._lock_team(view.team.pk)
            old_name = team.name
            team.name = name
            team.version = F("version") + 1
            team.save(update_fields=["name", "version"])
            team.refresh_from_db(fields=["version"])

            ActivityService.log_activity(
                actor=actor,
                verb=ACTIVITY_TEAM_RENAMED,
                target=team,
                event=team.event,
                metadata={"from": old_name, "to": name},
            )

        logger.info(f"Team renamed: team={team.id}, actor={actor.id}")
        return team

    # ─────────────────────────────────────────────────────────────
    # Registrations
    # ─────────────────────────────────────────────────────────────

    def register_individual(self, student, event, entries):
        """
        entries: [{"game_type": name, "group": ..., "difficulty_grade": ...}]
        Team game types go through create_team / join_team instead.
        """
        self._ensure_open(event)
        if not entries:
            raise RegistrationValidationError("Pick at least one game type", code="no_entries")

        with transaction.atomic():
            registration, created = self.store.get_or_create_registration(student, event)
            for item in entries:
                game_type = get_game_type(event, item.get("game_type"))
                if game_type.is_team_based:
                    raise RegistrationValidationError(
                        f"'{game_type.name}' is a team game type, create or join a team",
                        code="team_game_type",
                    )
                self.store.add_entry(
                    registration,
                    game_type,
                    sanitize_title(item.get("group"), max_length=64),
                    sanitize_title(item.get("difficulty_grade"), max_length=32),
                )

            ActivityService.log_activity(
                actor=student,
                verb=ACTIVITY_REGISTRATION_CREATED,
                target=registration,
                event=event,
                metadata={"game_types": [item.get("game_type") for item in entries], "new": created},
            )

        logger.info(
            f"Individual registration: registration={registration.id}, student={student.id}, "
            f"event={event.id}, entries={len(entries)}"
        )
        return registration

    def withdraw_entry(self, student, event, game_type_name):
        """Drop one game type; other entries on the registration are untouched."""
        game_type = get_game_type(event, game_type_name)

        with transaction.atomic():
            entry = self.store.active_entry(student, event, game_type, lock=True)
            if entry is None:
                raise NotFound(f"Not registered for '{game_type.name}'", code="entry_not_found")

            if entry.team_id:
                team = self._lock_team(entry.team_id)
                member = TeamMember.objects.filter(team=team, student=student).first()
                if member is not None:
                    self._remove_member(team, member, actor=student)
            self.store.deactivate_entry(entry)

            ActivityService.log_activity(
                actor=student,
                verb=ACTIVITY_ENTRY_WITHDRAWN,
                target=entry.registration,
                event=event,
                metadata={"game_type": game_type.name},
            )

        logger.info(f"Entry withdrawn: student={student.id}, event={event.id}, game_type={game_type.name}")
        return entry.registration

    def cancel_registration(self, actor, registration):
        allowed, reason = RegistrationPolicy.can_cancel_registration(actor, registration)
        if not allowed:
            raise PermissionDenied(reason)

        with transaction.atomic():
            registration = EventRegistration.objects.select_for_update().get(pk=registration.pk)
            if registration.status == EventRegistration.STATUS_CANCELLED:
                return registration

            team_ids = sorted(
                registration.entries
                .filter(is_active=True, team__isnull=False)
                .values_list("team_id", flat=True)
            )
            for team_id in team_ids:
                team = Team.objects.select_for_update().get(pk=team_id)
                member = TeamMember.objects.filter(team=team, student_id=registration.student_id).first()
                if member is not None and not team.is_retired:
                    self._remove_member(team, member, actor=actor)

            registration.entries.filter(is_active=True).update(is_active=False, team=None)
            registration.status = EventRegistration.STATUS_CANCELLED
            registration.save(update_fields=["status", "updated_at"])

            ActivityService.log_activity(
                actor=actor,
                verb=ACTIVITY_REGISTRATION_CANCELLED,
                target=registration,
                event=registration.event,
                metadata={"teams_left": len(team_ids)},
            )

        logger.info(
            f"Registration cancelled: registration={registration.id}, actor={actor.id}, "
            f"teams_left={len(team_ids)}"
        )
        return registration

    def update_registration(self, actor, registration, status=None, notes=None):
        """
        Coach review of a registration: confirm it, send it back to pending,
        cancel it or annotate it. Cancelling releases team seats through
        cancel_registration. A cancelled registration stays cancelled; the
        student re-registers to revive it.
        """
        allowed, reason = RegistrationPolicy.can_manage_event(actor, registration.event)
        if not allowed:
            raise PermissionDenied(reason)

        valid = {choice for choice, _ in EventRegistration.STATUS_CHOICES}
        if status is not None and status not in valid:
            raise RegistrationValidationError(
                f"Unknown status '{status}'", code="invalid_status"
            )

        with transaction.atomic():
            if status == EventRegistration.STATUS_CANCELLED:
                registration = self.cancel_registration(actor, registration)
                status = None

            registration = EventRegistration.objects.select_for_update().get(pk=registration.pk)
            if status is not None and registration.status == EventRegistration.STATUS_CANCELLED:
                raise RegistrationValidationError(
                    "Registration is cancelled", code="registration_cancelled"
                )

            previous = {"status": registration.status, "notes": registration.notes}
            fields = []
            if status is not None and status != registration.status:
                registration.status = status
                fields.append("status")
            if notes is not None and notes != registration.notes:
                registration.notes = notes
                fields.append("notes")
            if not fields:
                return registration

            registration.save(update_fields=fields + ["updated_at"])
            ActivityService.log_activity(
                actor=actor,
                verb=ACTIVITY_REGISTRATION_UPDATED,
                target=registration,
                event=registration.event,
                metadata={
                    "from": {f: previous[f] for f in fields},
                    "to": {f: getattr(registration, f) for f in fields},
                },
            )

        logger.info(
            f"Registration updated: registration={registration.id}, actor={actor.id}, fields={fields}"
        )
        return registration
