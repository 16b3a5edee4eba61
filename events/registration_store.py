# events/registration_store.py
"""
Registration Store.

Ledger of per-student, per-event registrations and their game type entries.
At most one active entry per (registration, game type) is enforced twice:
a lookup before writing, and the partial unique index as the backstop.
"""
import logging
from typing import Iterable, Optional, Tuple

from django.db import IntegrityError, transaction

from core.exceptions import Conflict
from .models import EventRegistration, GameTypeEntry

logger = logging.getLogger('cos.events')


class RegistrationStore:

    def get_registration(self, student, event) -> Optional[EventRegistration]:
        return EventRegistration.objects.filter(student=student, event=event).first()

    def get_or_create_registration(
        self, student, event, status=EventRegistration.STATUS_PENDING
    ) -> Tuple[EventRegistration, bool]:
        """
        One row per (student, event). A cancelled row is revived with the
        given status instead of creating a second one.
        """
        registration, created = EventRegistration.objects.get_or_create(
            student=student,
            event=event,
            defaults={"status": status},
        )
        if not created and registration.status == EventRegistration.STATUS_CANCELLED:
            registration.status = status
            registration.save(update_fields=["status", "updated_at"])
            logger.info(f"Registration reactivated: id={registration.id}, status={status}")
        return registration, created

    def active_entries(self, student, event):
        return (
            GameTypeEntry.objects
            .filter(registration__student=student, registration__event=event, is_active=True)
            .select_related("game_type", "team")
        )

    def active_entry(self, student, event, game_type, lock: bool = False) -> Optional[GameTypeEntry]:
        qs = self.active_entries(student, event).filter(game_type=game_type)
        if lock:
            qs = qs.select_for_update(of=("self",))
        return qs.first()

    def add_entry(self, registration, game_type, group, difficulty_grade="", team=None) -> GameTypeEntry:
        if registration.entries.filter(game_type=game_type, is_active=True).exists():
            raise Conflict(
                f"Already registered for '{game_type.name}'", code="duplicate_entry"
            )
        try:
            with transaction.atomic():
                entry = GameTypeEntry.objects.create(
                    registration=registration,
                    game_type=game_type,
                    group=group or "",
                    difficulty_grade=difficulty_grade or "",
                    team=team,
                )
        except IntegrityError:
            logger.warning(
                f"Duplicate entry blocked by constraint: registration={registration.id}, "
                f"game_type={game_type.id}"
            )
            raise Conflict(
                f"Already registered for '{game_type.name}'", code="duplicate_entry"
            )
        return entry

    def deactivate_entry(self, entry: GameTypeEntry) -> None:
        entry.is_active = False
        entry.team = None
        entry.save(update_fields=["is_active", "team"])

    def upsert_import_row(self, student, event, group: str, game_types: Iterable) -> bool:
        """
        Merge one import row into the student's registration.

        Returns True when the registration was inserted, False when an
        existing one was merged into. Re-running the same row changes nothing.
        """
        registration, created = self.get_or_create_registration(
            student, event, status=EventRegistration.STATUS_CONFIRMED
        )
        if registration.status != EventRegistration.STATUS_CONFIRMED:
            registration.status = EventRegistration.STATUS_CONFIRMED
            registration.save(update_fields=["status", "updated_at"])

        for game_type in game_types:
            entry = registration.entries.filter(game_type=game_type, is_active=True).first()
            if entry is None:
                self.add_entry(registration, game_type, group)
            elif group and entry.group != group:
                entry.group = group
                entry.save(update_fields=["group"])

        return created
