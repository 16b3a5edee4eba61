from django.db import migrations


def backfill_captains(apps, schema_editor):
    """
    Teams imported from the legacy roster format can arrive without a
    captain. Give each live, captainless team its lowest run-order member.
    """
    Team = apps.get_model("events", "Team")
    TeamMember = apps.get_model("events", "TeamMember")

    captainless = (
        Team.objects.exclude(status="retired")
        .exclude(members__is_captain=True)
        .filter(member_count__gt=0)
    )
    for team in captainless.iterator():
        first = TeamMember.objects.filter(team=team).order_by("run_order").first()
        if first is not None:
            TeamMember.objects.filter(pk=first.pk).update(is_captain=True)


class Migration(migrations.Migration):

    dependencies = [
        ("events", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(backfill_captains, migrations.RunPython.noop),
    ]
