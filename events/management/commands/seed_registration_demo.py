from datetime import timedelta

from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from events.catalog import sync_game_types
from events.models import Event

User = get_user_model()


DEMO_STUDENTS = [
    ("alice", "张三"),
    ("bob", "李四"),
    ("carol", "王五"),
    ("dave", "赵六"),
]

DEMO_GAME_TYPES = [
    {"name": "接力赛", "teamSize": 2},
    {"name": "团队赛", "teamSize": 3},
    "短距离",
]


class Command(BaseCommand):
    help = "Seeds a coach, a few students and an open event with relay, team and individual game types"

    def add_arguments(self, parser):
        parser.add_argument("--event-name", default="校园定向越野赛")
        parser.add_argument("--password", default="password")

    @transaction.atomic
    def handle(self, *args, **options):
        password = options["password"]
        self.stdout.write("Seeding registration demo data...")

        coach, created = User.objects.get_or_create(
            username="coach",
            defaults={"email": "coach@example.com", "role": User.ROLE_COACH, "real_name": "教练"},
        )
        if created:
            coach.set_password(password)
            coach.save()

        for username, real_name in DEMO_STUDENTS:
            student, created = User.objects.get_or_create(
                username=username,
                defaults={"email": f"{username}@example.com", "real_name": real_name},
            )
            if created:
                student.set_password(password)
                student.save()

        now = timezone.now()
        event, _ = Event.objects.get_or_create(
            name=options["event_name"],
            defaults={
                "organization": "Demo School",
                "start_date": now + timedelta(days=14),
                "end_date": now + timedelta(days=15),
                "open_registration": True,
                "groups": ["M12", "W12", {"code": "M14", "name": "M14"}],
                "created_by": coach,
            },
        )
        game_types = sync_game_types(event, DEMO_GAME_TYPES)

        self.stdout.write(
            self.style.SUCCESS(
                f"Event '{event.name}' (id={event.id}) ready with "
                f"{', '.join(f'{gt.name}:{gt.kind}' for gt in game_types)}"
            )
        )
