import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Event',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(help_text='Bulk imports match on this exactly', max_length=255, unique=True)),
                ('organization', models.CharField(blank=True, default='', max_length=255)),
                ('event_type', models.CharField(blank=True, default='', max_length=64)),
                ('location', models.CharField(blank=True, max_length=255, null=True)),
                ('start_date', models.DateTimeField()),
                ('end_date', models.DateTimeField()),
                ('open_registration', models.BooleanField(default=False)),
                ('groups', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='authored_events', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'indexes': [
                    models.Index(fields=['start_date'], name='event_start_idx'),
                    models.Index(fields=['open_registration'], name='event_open_reg_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='GameType',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=64)),
                ('kind', models.CharField(choices=[('individual', 'Individual'), ('relay', 'Relay'), ('team', 'Team')], default='individual', max_length=16)),
                ('team_size', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('external_game_id', models.CharField(blank=True, default='', max_length=64)),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='game_types', to='events.event')),
            ],
            options={
                'ordering': ['id'],
                'unique_together': {('event', 'name')},
            },
        ),
        migrations.CreateModel(
            name='EventRegistration',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('confirmed', 'Confirmed'), ('cancelled', 'Cancelled')], default='pending', max_length=16)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='registrations', to='events.event')),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='event_registrations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'indexes': [
                    models.Index(fields=['event', 'created_at'], name='reg_event_created_idx'),
                    models.Index(fields=['event', 'status'], name='reg_event_status_idx'),
                ],
                'unique_together': {('student', 'event')},
            },
        ),
        migrations.CreateModel(
            name='Team',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('invite_code', models.CharField(max_length=16, unique=True)),
                ('capacity', models.PositiveSmallIntegerField()),
                ('member_count', models.PositiveSmallIntegerField(default=0)),
                ('last_run_order', models.PositiveIntegerField(default=0)),
                ('version', models.PositiveIntegerField(default=0)),
                ('status', models.CharField(choices=[('forming', 'Forming'), ('full', 'Full'), ('retired', 'Retired')], default='forming', max_length=16)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('retired_at', models.DateTimeField(blank=True, null=True)),
                ('creator', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_teams', to=settings.AUTH_USER_MODEL)),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='teams', to='events.event')),
                ('game_type', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='teams', to='events.gametype')),
            ],
            options={
                'indexes': [
                    models.Index(fields=['event', 'game_type', 'invite_code'], name='team_event_gt_code_idx'),
                    models.Index(fields=['event', 'status'], name='team_event_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('member_count__lte', models.F('capacity'))), name='team_member_count_within_capacity'),
                ],
            },
        ),
        migrations.CreateModel(
            name='GameTypeEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('group', models.CharField(max_length=64)),
                ('difficulty_grade', models.CharField(blank=True, default='', max_length=32)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('game_type', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='entries', to='events.gametype')),
                ('registration', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='entries', to='events.eventregistration')),
                ('team', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='entries', to='events.team')),
            ],
            options={
                'ordering': ['id'],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('is_active', True)), fields=('registration', 'game_type'), name='uniq_active_entry_per_game_type'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TeamMember',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('run_order', models.PositiveIntegerField()),
                ('is_captain', models.BooleanField(default=False)),
                ('joined_at', models.DateTimeField(auto_now_add=True)),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='team_memberships', to=settings.AUTH_USER_MODEL)),
                ('team', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='members', to='events.team')),
            ],
            options={
                'ordering': ['run_order'],
                'constraints': [
                    models.UniqueConstraint(fields=('team', 'student'), name='uniq_team_student'),
                    models.UniqueConstraint(fields=('team', 'run_order'), name='uniq_team_run_order'),
                    models.UniqueConstraint(condition=models.Q(('is_captain', True)), fields=('team',), name='one_captain_per_team'),
                ],
            },
        ),
    ]
