from django.test import TestCase

from core.exceptions import NotFound, RegistrationValidationError
from events.catalog import (
    get_game_type,
    infer_kind,
    normalize_game_type,
    sync_game_types,
    team_capacity,
)
from events.models import GameType
from .helpers import make_event


class GameTypeNormalizationTests(TestCase):

    def test_infer_kind_from_name(self):
        self.assertEqual(infer_kind("4x100接力赛"), GameType.KIND_RELAY)
        self.assertEqual(infer_kind("团队赛"), GameType.KIND_TEAM)
        self.assertEqual(infer_kind("Sprint"), GameType.KIND_INDIVIDUAL)
        self.assertEqual(infer_kind("短距离", explicit="relay"), GameType.KIND_RELAY)

    def test_unknown_explicit_kind(self):
        with self.assertRaises(RegistrationValidationError):
            infer_kind("短距离", explicit="pairs")

    def test_bare_string_and_object_shapes_agree(self):
        self.assertEqual(
            normalize_game_type("接力赛"),
            {"name": "接力赛", "kind": "relay", "team_size": 4, "external_game_id": ""},
        )
        self.assertEqual(
            normalize_game_type({"name": "团队赛", "teamSize": "3", "gameId": 17}),
            {"name": "团队赛", "kind": "team", "team_size": 3, "external_game_id": "17"},
        )
        self.assertEqual(normalize_game_type({"name": "短距离", "teamSize": 5})["team_size"], 5)

    def test_team_size_bounds(self):
        with self.assertRaises(RegistrationValidationError):
            normalize_game_type({"name": "接力赛", "teamSize": 1})
        with self.assertRaises(RegistrationValidationError):
            normalize_game_type({"name": "接力赛", "teamSize": 9})
        self.assertEqual(normalize_game_type({"name": "团队赛", "teamSize": 10})["team_size"], 10)

    def test_missing_name(self):
        with self.assertRaises(RegistrationValidationError):
            normalize_game_type({"teamSize": 2})


class CatalogLookupTests(TestCase):
    def setUp(self):
        self.event = make_event()

    def test_sync_is_idempotent_and_updates_size(self):
        sync_game_types(self.event, [{"name": "接力赛", "teamSize": 3}])
        self.assertEqual(self.event.game_types.count(), 3)
        self.assertEqual(get_game_type(self.event, "接力赛").team_size, 3)

    def test_get_game_type_unknown(self):
        with self.assertRaises(NotFound):
            get_game_type(self.event, "马拉松")

    def test_team_capacity(self):
        self.assertEqual(team_capacity(get_game_type(self.event, "团队赛")), 3)
        with self.assertRaises(RegistrationValidationError):
            team_capacity(get_game_type(self.event, "短距离"))

        broken = get_game_type(self.event, "接力赛")
        broken.team_size = None
        with self.assertRaises(RegistrationValidationError):
            team_capacity(broken)
