# events/importer.py
"""
Bulk registration import.

Rows come from a JSON list, a CSV upload or an XLSX sheet and carry
(event name, student name, group, game types). Every row is applied in its
own savepoint: a bad row is reported and skipped, the rest of the batch
still lands. Rows merge into the student's existing registration, so
re-running the same file inserts nothing new.
"""
import csv
import io
import logging
import re
import unicodedata
import zipfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from django.conf import settings
from django.db import transaction
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from core.constants import ACTIVITY_REGISTRATION_IMPORTED
from core.exceptions import RegistrationError, RegistrationValidationError
from core.services import ActivityService
from users.directory import StudentDirectory
from .catalog import get_event_by_name
from .models import GameType
from .registration_store import RegistrationStore
from .sanitizers import sanitize_title

logger = logging.getLogger('cos.events.imports')


# canonical field -> accepted headers
HEADER_ALIASES = {
    "event_name": ("eventName", "event", "赛事", "赛事名称"),
    "student_name": ("studentName", "name", "姓名"),
    "group": ("group", "组别"),
    "game_types": ("gameTypes", "gameTypeNames", "项目", "参赛项目"),
}

GAME_TYPE_SEPARATORS = re.compile(r"[,，、;；]")


def _norm_header(s) -> str:
    """
    Lowercase, strip accents and separators.
    'Event Name' / 'event_name' / 'eventName' -> 'eventname'
    """
    s = str(s or "").strip().lower()
    s = "".join(c for c in unicodedata.normalize("NFKD", s) if not unicodedata.combining(c))
    for sep in (" ", "_", "-", "/"):
        s = s.replace(sep, "")
    return s


_ALIAS_LOOKUP = {
    _norm_header(alias): canonical
    for canonical, aliases in HEADER_ALIASES.items()
    for alias in aliases
}


def _to_text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def split_game_types(value) -> List[str]:
    """'接力赛，短距离、团队赛' -> ['接力赛', '短距离', '团队赛'] (order kept, duplicates dropped)"""
    if isinstance(value, (list, tuple)):
        parts = [_to_text(v) for v in value]
    else:
        parts = [p.strip() for p in GAME_TYPE_SEPARATORS.split(_to_text(value))]

    seen = []
    for part in parts:
        if part and part not in seen:
            seen.append(part)
    return seen


def canonical_row(raw: dict) -> dict:
    row = {"event_name": "", "student_name": "", "group": "", "game_types": []}
    for key, value in (raw or {}).items():
        canonical = _ALIAS_LOOKUP.get(_norm_header(key))
        if canonical == "game_types":
            row[canonical] = split_game_types(value)
        elif canonical:
            row[canonical] = _to_text(value)
    return row


def read_csv_rows(fileobj) -> List[dict]:
    content = fileobj.read()
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise RegistrationValidationError(
                "CSV file must be UTF-8 encoded", code="unreadable_file"
            )
    return [dict(r) for r in csv.DictReader(io.StringIO(content))]


def read_xlsx_rows(fileobj, sheet: str = "") -> List[dict]:
    try:
        wb = load_workbook(fileobj, read_only=True, data_only=True)
    except (zipfile.BadZipFile, InvalidFileException):
        raise RegistrationValidationError(
            "Could not read the spreadsheet, upload a valid .xlsx file", code="unreadable_file"
        )
    ws = wb[sheet] if sheet and sheet in wb.sheetnames else wb.active

    rows = ws.iter_rows(values_only=True)
    headers = [_to_text(h) for h in next(rows, [])]
    parsed = []
    for values in rows:
        if not any(v not in (None, "") for v in values):
            continue
        parsed.append({h: v for h, v in zip(headers, values) if h})
    wb.close()
    return parsed


def read_upload(upload) -> List[dict]:
    name = (getattr(upload, "name", "") or "").lower()
    if name.endswith(".xlsx"):
        return read_xlsx_rows(upload)
    if name.endswith(".csv"):
        return read_csv_rows(upload)
    raise RegistrationValidationError(
        "Unsupported file type, upload a .csv or .xlsx file", code="unsupported_format"
    )


@dataclass
class RowError:
    row: int
    student_name: str
    error: str

    def to_dict(self):
        return {"row": self.row, "student_name": self.student_name, "error": self.error}


@dataclass
class ImportResult:
    inserted_count: int = 0
    updated_count: int = 0
    errors: List[RowError] = field(default_factory=list)

    def to_dict(self):
        return {
            "inserted_count": self.inserted_count,
            "updated_count": self.updated_count,
            "errors": [e.to_dict() for e in self.errors],
        }


class RegistrationImporter:

    def __init__(self, actor, directory: Optional[StudentDirectory] = None, store: Optional[RegistrationStore] = None):
        self.actor = actor
        self.directory = directory or StudentDirectory()
        self.store = store or RegistrationStore()
        self._events: Dict[str, object] = {}

    def _event(self, name):
        if name not in self._events:
            self._events[name] = get_event_by_name(name)
        return self._events[name]

    def _student_error(self, lookup, name) -> str:
        if name in lookup.timed_out:
            return "Student directory lookup timed out"
        if name in lookup.ambiguous:
            return f"Student name '{name}' matches more than one student"
        return f"Student '{name}' not found"

    def run(self, raw_rows) -> ImportResult:
        max_rows = getattr(settings, "REGISTRATION", {}).get("IMPORT_MAX_ROWS", 5000)
        if len(raw_rows) > max_rows:
            raise RegistrationValidationError(
                f"Too many rows ({len(raw_rows)}), the limit is {max_rows}", code="too_many_rows"
            )

        rows = [canonical_row(r) for r in raw_rows]
        lookup = self.directory.resolve_many(r["student_name"] for r in rows)
        result = ImportResult()

        for number, row in enumerate(rows, start=1):
            name = row["student_name"]
            try:
                created = self._apply(row, lookup)
            except RegistrationError as exc:
                result.errors.append(RowError(number, name, str(exc.detail)))
                continue

            if created:
                result.inserted_count += 1
            else:
                result.updated_count += 1

        logger.info(
            f"Registration import finished: actor={getattr(self.actor, 'id', None)}, rows={len(rows)}, "
            f"inserted={result.inserted_count}, updated={result.updated_count}, errors={len(result.errors)}"
        )
        if result.errors:
            logger.warning(f"Registration import row errors: {[e.to_dict() for e in result.errors[:20]]}")
        return result

    def _apply(self, row, lookup) -> bool:
        name = row["student_name"]
        if not name:
            raise RegistrationValidationError("Missing student name", code="missing_field")
        if not row["event_name"]:
            raise RegistrationValidationError("Missing event name", code="missing_field")
        if not row["game_types"]:
            raise RegistrationValidationError("No game types given", code="missing_field")

        event = self._event(row["event_name"])
        if event is None:
            raise RegistrationValidationError(f"Unknown event '{row['event_name']}'", code="event_not_found")

        student = lookup.found.get(name)
        if student is None:
            raise RegistrationValidationError(self._student_error(lookup, name), code="student_not_found")

        offered = {gt.name: gt for gt in GameType.objects.filter(event=event, name__in=row["game_types"])}
        unknown = [n for n in row["game_types"] if n not in offered]
        if unknown:
            raise RegistrationValidationError(
                f"Game type '{unknown[0]}' is not offered by this event", code="game_type_not_found"
            )

        with transaction.atomic():
            created = self.store.upsert_import_row(
                student,
                event,
                sanitize_title(row["group"], max_length=64),
                [offered[n] for n in row["game_types"]],
            )
            registration = self.store.get_registration(student, event)
            ActivityService.log_activity(
                actor=self.actor,
                verb=ACTIVITY_REGISTRATION_IMPORTED,
                target=registration,
                event=event,
                metadata={"game_types": row["game_types"], "inserted": created},
            )
        return created
