from rest_framework import serializers

from .models import Event, EventRegistration, GameType, GameTypeEntry, Team, TeamMember


# -----------------------------------------
# CATALOG
# -----------------------------------------
class GameTypeSerializer(serializers.ModelSerializer):
    is_team_based = serializers.BooleanField(read_only=True)

    class Meta:
        model = GameType
        fields = ["id", "name", "kind", "team_size", "is_team_based"]


class EventSummarySerializer(serializers.ModelSerializer):
    game_types = GameTypeSerializer(many=True, read_only=True)
    groups = serializers.ListField(source="group_labels", read_only=True)

    class Meta:
        model = Event
        fields = [
            "id",
            "name",
            "organization",
            "start_date",
            "end_date",
            "open_registration",
            "groups",
            "game_types",
        ]


# -----------------------------------------
# TEAMS
# -----------------------------------------
class TeamMemberSerializer(serializers.ModelSerializer):
    student_id = serializers.IntegerField(source="student.id", read_only=True)
    name = serializers.CharField(source="student.display_name", read_only=True)

    class Meta:
        model = TeamMember
        fields = ["student_id", "name", "run_order", "is_captain", "joined_at"]


class TeamSerializer(serializers.ModelSerializer):
    game_type = serializers.CharField(source="game_type.name", read_only=True)
    members = serializers.SerializerMethodField()

    class Meta:
        model = Team
        fields = [
            "id",
            "name",
            "invite_code",
            "game_type",
            "capacity",
            "member_count",
            "status",
            "members",
        ]

    def get_members(self, obj):
        qs = obj.members.select_related("student").order_by("run_order")
        return TeamMemberSerializer(qs, many=True).data


class TeamViewSerializer(serializers.Serializer):
    """Renders an invite_codes.TeamView plus the caller's relation to it."""
    invite_code = serializers.CharField()
    name = serializers.CharField()
    event = serializers.SerializerMethodField()
    game_type = serializers.SerializerMethodField()
    capacity = serializers.IntegerField()
    member_count = serializers.IntegerField()
    status = serializers.CharField()
    creator_student_id = serializers.IntegerField(allow_null=True)
    members = serializers.SerializerMethodField()
    caller_status = serializers.SerializerMethodField()

    def get_event(self, obj):
        return {"id": obj.event.id, "name": obj.event.name}

    def get_game_type(self, obj):
        return {"name": obj.game_type.name, "kind": obj.game_type.kind}

    def get_members(self, obj):
        return [
            {
                "student_id": m.student_id,
                "name": m.name,
                "run_order": m.run_order,
                "is_captain": m.is_captain,
            }
            for m in obj.members
        ]

    def get_caller_status(self, obj):
        return self.context.get("caller_status")


# -----------------------------------------
# REGISTRATIONS
# -----------------------------------------
class GameTypeEntrySerializer(serializers.ModelSerializer):
    game_type = serializers.CharField(source="game_type.name", read_only=True)
    kind = serializers.CharField(source="game_type.kind", read_only=True)
    team = serializers.SerializerMethodField()

    class Meta:
        model = GameTypeEntry
        fields = ["id", "game_type", "kind", "group", "difficulty_grade", "team"]

    def get_team(self, obj):
        if not obj.team_id:
            return None
        data = TeamSerializer(obj.team).data
        student_id = obj.registration.student_id
        data["is_captain"] = any(
            m["student_id"] == student_id and m["is_captain"] for m in data["members"]
        )
        return data


class RegistrationSerializer(serializers.ModelSerializer):
    """Per (student, event) read view: status plus every active entry with its roster."""
    event = serializers.SerializerMethodField()
    student_id = serializers.IntegerField(source="student.id", read_only=True)
    student_name = serializers.CharField(source="student.display_name", read_only=True)
    entries = serializers.SerializerMethodField()

    class Meta:
        model = EventRegistration
        fields = [
            "id",
            "event",
            "student_id",
            "student_name",
            "status",
            "notes",
            "entries",
            "created_at",
            "updated_at",
        ]

    def get_event(self, obj):
        return {"id": obj.event_id, "name": obj.event.name}

    def get_entries(self, obj):
        qs = (
            obj.entries.filter(is_active=True)
            .select_related("game_type", "team", "registration")
            .order_by("id")
        )
        return GameTypeEntrySerializer(qs, many=True).data


# -----------------------------------------
# INPUT
# -----------------------------------------
class CreateOrJoinTeamSerializer(serializers.Serializer):
    game_type = serializers.CharField(max_length=64, required=False, allow_blank=True)
    invite_code = serializers.CharField(max_length=16, required=False, allow_blank=True)
    team_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    group = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    difficulty_grade = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if not attrs.get("invite_code") and not attrs.get("game_type"):
            raise serializers.ValidationError("game_type is required to create a team")
        return attrs


class IndividualEntrySerializer(serializers.Serializer):
    game_type = serializers.CharField(max_length=64)
    group = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    difficulty_grade = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")


class RegisterIndividualSerializer(serializers.Serializer):
    entries = IndividualEntrySerializer(many=True, allow_empty=False)


class SwitchTeamSerializer(serializers.Serializer):
    from_invite_code = serializers.CharField(max_length=16, required=False, allow_blank=True)


class TransferCaptainSerializer(serializers.Serializer):
    student_id = serializers.IntegerField()


class RenameTeamSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)


class UpdateRegistrationSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=16, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if "status" not in attrs and "notes" not in attrs:
            raise serializers.ValidationError("Provide status or notes")
        return attrs


class ImportRowSerializer(serializers.Serializer):
    """JSON import body: {"rows": [{...}, ...]}; headers are matched leniently."""
    rows = serializers.ListField(child=serializers.DictField(), allow_empty=False)
