# events/models.py
from django.db import models
from django.db.models import F, Q
from django.conf import settings


class Event(models.Model):
    """
    Event catalog entry. Authored by coaches (admin / seed command); the
    registration subsystem only reads it.
    """
    name = models.CharField(max_length=255, unique=True, help_text="Bulk imports match on this exactly")
    organization = models.CharField(max_length=255, blank=True, default="")
    event_type = models.CharField(max_length=64, blank=True, default="")
    location = models.CharField(max_length=255, blank=True, null=True)
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    open_registration = models.BooleanField(default=False)

    # Either plain labels ("M12") or {"code": ..., "name": ...} objects
    groups = models.JSONField(default=list, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="authored_events",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["start_date"], name="event_start_idx"),
            models.Index(fields=["open_registration"], name="event_open_reg_idx"),
        ]

    def __str__(self):
        return self.name

    @property
    def group_labels(self):
        labels = []
        for group in self.groups or []:
            if isinstance(group, dict):
                labels.append(group.get("name") or group.get("code") or "")
            else:
                labels.append(str(group))
        return [label for label in labels if label]


class GameType(models.Model):
    """
    A competition category within an event.

    `kind` is resolved once when the game type is written (see
    events.catalog.infer_kind) so read sites never re-interpret the name.
    """
    KIND_INDIVIDUAL = "individual"
    KIND_RELAY = "relay"
    KIND_TEAM = "team"

    KIND_CHOICES = [
        (KIND_INDIVIDUAL, "Individual"),
        (KIND_RELAY, "Relay"),
        (KIND_TEAM, "Team"),
    ]

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="game_types")
    name = models.CharField(max_length=64)
    kind = models.CharField(max_length=16, choices=KIND_CHOICES, default=KIND_INDIVIDUAL)
    team_size = models.PositiveSmallIntegerField(null=True, blank=True)
    external_game_id = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        unique_together = ("event", "name")
        ordering = ["id"]

    def __str__(self):
        return f"{self.name} ({self.event.name})"

    @property
    def is_team_based(self):
        return self.kind in (self.KIND_RELAY, self.KIND_TEAM)


class EventRegistration(models.Model):
    STATUS_PENDING = "pending"
    STATUS_CONFIRMED = "confirmed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_CONFIRMED, "Confirmed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="event_registrations",
    )
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="registrations")
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("student", "event")
        indexes = [
            models.Index(fields=["event", "created_at"], name="reg_event_created_idx"),
            models.Index(fields=["event", "status"], name="reg_event_status_idx"),
        ]

    def __str__(self):
        return f"{self.student} @ {self.event} ({self.status})"

    @property
    def is_active(self):
        return self.status != self.STATUS_CANCELLED


class Team(models.Model):
    """
    A relay/team roster, addressed by its invite code.

    member_count and last_run_order are maintained by the team formation
    engine with conditional updates; they always equal the live member rows.
    """
    STATUS_FORMING = "forming"
    STATUS_FULL = "full"
    STATUS_RETIRED = "retired"

    STATUS_CHOICES = [
        (STATUS_FORMING, "Forming"),
        (STATUS_FULL, "Full"),
        (STATUS_RETIRED, "Retired"),
    ]

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="teams")
    game_type = models.ForeignKey(GameType, on_delete=models.PROTECT, related_name="teams")
    name = models.CharField(max_length=100)
    invite_code = models.CharField(max_length=16, unique=True)
    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_teams",
    )

    capacity = models.PositiveSmallIntegerField()
    member_count = models.PositiveSmallIntegerField(default=0)
    last_run_order = models.PositiveIntegerField(default=0)
    version = models.PositiveIntegerField(default=0)

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_FORMING)
    created_at = models.DateTimeField(auto_now_add=True)
    retired_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["event", "game_type", "invite_code"], name="team_event_gt_code_idx"),
            models.Index(fields=["event", "status"], name="team_event_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(member_count__lte=F("capacity")),
                name="team_member_count_within_capacity",
            ),
        ]

    def __str__(self):
        return f"{self.name} [{self.invite_code}]"

    @property
    def is_full(self):
        return self.member_count >= self.capacity

    @property
    def is_retired(self):
        return self.status == self.STATUS_RETIRED


class GameTypeEntry(models.Model):
    """
    One game type a student is registered for. Team game types point at the
    team the student runs with; the entry is edited in place when switching.
    """
    registration = models.ForeignKey(EventRegistration, on_delete=models.CASCADE, related_name="entries")
    game_type = models.ForeignKey(GameType, on_delete=models.PROTECT, related_name="entries")
    group = models.CharField(max_length=64)
    difficulty_grade = models.CharField(max_length=32, blank=True, default="")
    team = models.ForeignKey(
        Team,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="entries",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["registration", "game_type"],
                condition=Q(is_active=True),
                name="uniq_active_entry_per_game_type",
            ),
        ]

    def __str__(self):
        return f"{self.registration.student} - {self.game_type.name}"


class TeamMember(models.Model):
    """A student's seat on a team: relay leg (run_order) and captain flag."""
    team = models.ForeignKey(Team, on_delete=models.CASCADE, related_name="members")
    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="team_memberships",
    )
    run_order = models.PositiveIntegerField()
    is_captain = models.BooleanField(default=False)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["run_order"]
        constraints = [
            models.UniqueConstraint(fields=["team", "student"], name="uniq_team_student"),
            models.UniqueConstraint(fields=["team", "run_order"], name="uniq_team_run_order"),
            models.UniqueConstraint(
                fields=["team"],
                condition=Q(is_captain=True),
                name="one_captain_per_team",
            ),
        ]

    def __str__(self):
        return f"{self.student} #{self.run_order} in {self.team.name}"
