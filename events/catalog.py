# events/catalog.py
"""
Event Catalog helpers.

Game types historically arrived either as a bare name ("接力赛") or as an
object ({"name": ..., "teamSize": ...}). Both shapes are normalized here,
once, into GameType rows with an explicit `kind`; nothing downstream looks
at the raw shape again.
"""
import logging
from typing import Optional

from core.exceptions import NotFound, RegistrationValidationError
from .models import Event, GameType

logger = logging.getLogger('cos.events')


MIN_TEAM_SIZE = 2

DEFAULT_TEAM_SIZES = {
    GameType.KIND_RELAY: 4,
    GameType.KIND_TEAM: 6,
}

MAX_TEAM_SIZES = {
    GameType.KIND_RELAY: 8,
    GameType.KIND_TEAM: 10,
}

# Name markers used when a game type carries no explicit kind
KIND_MARKERS = (
    ("接力", GameType.KIND_RELAY),
    ("relay", GameType.KIND_RELAY),
    ("团队", GameType.KIND_TEAM),
    ("team", GameType.KIND_TEAM),
)


def infer_kind(name: str, explicit: Optional[str] = None) -> str:
    if explicit:
        if explicit not in dict(GameType.KIND_CHOICES):
            raise RegistrationValidationError(f"Unknown game type kind '{explicit}'", code="invalid_kind")
        return explicit

    lowered = (name or "").lower()
    for marker, kind in KIND_MARKERS:
        if marker in lowered:
            return kind
    return GameType.KIND_INDIVIDUAL


def normalize_game_type(raw) -> dict:
    """
    Accepts "name" or {"name", "teamSize"/"team_size", "kind", "gameId"}
    and returns {"name", "kind", "team_size", "external_game_id"}.
    """
    if isinstance(raw, str):
        raw = {"name": raw}
    if not isinstance(raw, dict):
        raise RegistrationValidationError("Game type must be a name or an object", code="invalid_game_type")

    name = (raw.get("name") or "").strip()
    if not name:
        raise RegistrationValidationError("Game type name is required", code="invalid_game_type")

    kind = infer_kind(name, raw.get("kind"))
    team_size = raw.get("teamSize", raw.get("team_size"))
    if team_size in ("", None):
        team_size = None
    else:
        try:
            team_size = int(team_size)
        except (TypeError, ValueError):
            raise RegistrationValidationError(f"Invalid team size for '{name}'", code="invalid_team_size")

    if kind != GameType.KIND_INDIVIDUAL:
        if team_size is None:
            team_size = DEFAULT_TEAM_SIZES[kind]
        validate_team_size(kind, team_size, name)

    return {
        "name": name,
        "kind": kind,
        "team_size": team_size,
        "external_game_id": str(raw.get("gameId") or raw.get("external_game_id") or ""),
    }


def validate_team_size(kind: str, team_size, name: str = "") -> int:
    if team_size is None:
        raise RegistrationValidationError(f"Game type '{name}' has no team size", code="invalid_team_size")
    if team_size < MIN_TEAM_SIZE:
        raise RegistrationValidationError(
            f"Team size for '{name}' must be at least {MIN_TEAM_SIZE}", code="invalid_team_size"
        )
    limit = MAX_TEAM_SIZES.get(kind)
    if limit and team_size > limit:
        raise RegistrationValidationError(
            f"Team size for '{name}' cannot exceed {limit}", code="invalid_team_size"
        )
    return team_size


def sync_game_types(event: Event, raw_list) -> list:
    """Create or update the event's game types from raw catalog data."""
    synced = []
    for raw in raw_list or []:
        data = normalize_game_type(raw)
        game_type, created = GameType.objects.update_or_create(
            event=event,
            name=data["name"],
            defaults={
                "kind": data["kind"],
                "team_size": data["team_size"],
                "external_game_id": data["external_game_id"],
            },
        )
        if created:
            logger.info(f"Game type created: event={event.id}, name={game_type.name}, kind={game_type.kind}")
        synced.append(game_type)
    return synced


def get_event(event_id) -> Event:
    try:
        return Event.objects.get(pk=event_id)
    except (Event.DoesNotExist, ValueError, TypeError):
        raise NotFound("Event not found", code="event_not_found")


def get_event_by_name(name: str) -> Optional[Event]:
    return Event.objects.filter(name=(name or "").strip()).first()


def get_game_type(event: Event, name: str) -> GameType:
    game_type = GameType.objects.filter(event=event, name=(name or "").strip()).first()
    if game_type is None:
        raise NotFound(f"Game type '{name}' is not offered by this event", code="game_type_not_found")
    return game_type


def team_capacity(game_type: GameType) -> int:
    if not game_type.is_team_based:
        raise RegistrationValidationError(
            f"'{game_type.name}' is an individual game type", code="not_team_game_type"
        )
    return validate_team_size(game_type.kind, game_type.team_size, game_type.name)
