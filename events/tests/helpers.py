from datetime import timedelta

from django.utils import timezone

from events.catalog import sync_game_types
from events.models import Event
from users.models import User


DEFAULT_GAME_TYPES = [
    {"name": "接力赛", "teamSize": 2},
    {"name": "团队赛", "teamSize": 3},
    "短距离",
]


def make_student(username, real_name=None, **extra):
    return User.objects.create_user(
        username=username,
        password="pass1234",
        real_name=real_name if real_name is not None else username,
        **extra,
    )


def make_coach(username="coach"):
    return make_student(username, role=User.ROLE_COACH)


def make_event(name="Spring Relay", open_registration=True, ends_in_days=10, game_types=None):
    now = timezone.now()
    event = Event.objects.create(
        name=name,
        start_date=now + timedelta(days=ends_in_days - 1),
        end_date=now + timedelta(days=ends_in_days),
        open_registration=open_registration,
        groups=["M12", "W12"],
    )
    sync_game_types(event, DEFAULT_GAME_TYPES if game_types is None else game_types)
    return event


class TeamInvariantsMixin:

    def assertTeamInvariants(self, team):
        team.refresh_from_db()
        members = list(team.members.all())
        self.assertLessEqual(len(members), team.capacity)
        self.assertEqual(len(members), team.member_count)
        if members:
            self.assertEqual(sum(1 for m in members if m.is_captain), 1)
        run_orders = [m.run_order for m in members]
        self.assertEqual(len(run_orders), len(set(run_orders)))
