# events/views/teams.py - Team Formation API Views

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView

from core.exceptions import RegistrationValidationError
from events.invite_codes import resolve
from events.serializers import (
    CreateOrJoinTeamSerializer,
    RegistrationSerializer,
    RenameTeamSerializer,
    SwitchTeamSerializer,
    TeamSerializer,
    TeamViewSerializer,
    TransferCaptainSerializer,
)
from events.team_engine import TeamFormationEngine
from .generics import get_event_or_404, registration_window_error


class CreateOrJoinTeamView(APIView):
    """
    POST /api/events/<event_id>/teams/
    Body: {"game_type": "接力赛", "invite_code"?: "...", "team_name"?: "...", "group"?: "..."}

    With an invite code the caller joins that team, otherwise a new team is
    created with the caller as captain.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, event_id):
        event = get_event_or_404(event_id)
        closed = registration_window_error(request.user, event)
        if closed:
            return closed

        serializer = CreateOrJoinTeamSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        engine = TeamFormationEngine()

        if data.get("invite_code"):
            view = resolve(data["invite_code"], event=event)
            if data.get("game_type") and data["game_type"].strip() != view.game_type.name:
                raise RegistrationValidationError(
                    f"Invite code belongs to a '{view.game_type.name}' team", code="game_type_mismatch"
                )
            reg = engine.join_team(
                request.user,
                data["invite_code"],
                group=data.get("group") or None,
                difficulty_grade=data.get("difficulty_grade", ""),
            )
            return Response(RegistrationSerializer(reg).data, status=status.HTTP_200_OK)

        reg, team = engine.create_team(
            request.user,
            event,
            data["game_type"],
            team_name=data.get("team_name") or None,
            group=data.get("group", ""),
            difficulty_grade=data.get("difficulty_grade", ""),
        )
        payload = RegistrationSerializer(reg).data
        payload["invite_code"] = team.invite_code
        return Response(payload, status=status.HTTP_201_CREATED)


class TeamViewSet(viewsets.ViewSet):
    """
    Teams addressed by invite code.

    GET    /api/events/teams/<code>/           resolve (roster + caller status)
    PATCH  /api/events/teams/<code>/           rename (captain or coach)
    POST   /api/events/teams/<code>/switch/    move here from the current team
    POST   /api/events/teams/<code>/leave/
    POST   /api/events/teams/<code>/captain/   hand over captaincy
    """
    permission_classes = [IsAuthenticated]
    lookup_field = "invite_code"
    lookup_value_regex = "[0-9A-Za-z]+"
    throttle_scope = "invite-resolve"

    def retrieve(self, request, invite_code=None):
        view = resolve(invite_code)
        caller_status = TeamFormationEngine().caller_status(view, request.user)
        return Response(TeamViewSerializer(view, context={"caller_status": caller_status}).data)

    def partial_update(self, request, invite_code=None):
        view = resolve(invite_code)
        closed = registration_window_error(request.user, view.event)
        if closed:
            return closed

        serializer = RenameTeamSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        team = TeamFormationEngine().rename_team(request.user, invite_code, serializer.validated_data["name"])
        return Response(TeamSerializer(team).data)

    @action(detail=True, methods=["post"], url_path="switch")
    def switch(self, request, invite_code=None):
        view = resolve(invite_code)
        closed = registration_window_error(request.user, view.event)
        if closed:
            return closed

        serializer = SwitchTeamSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reg = TeamFormationEngine().switch_team(
            request.user,
            invite_code,
            old_code=serializer.validated_data.get("from_invite_code") or None,
        )
        return Response(RegistrationSerializer(reg).data)

    @action(detail=True, methods=["post"], url_path="leave")
    def leave(self, request, invite_code=None):
        view = resolve(invite_code)
        closed = registration_window_error(request.user, view.event)
        if closed:
            return closed

        TeamFormationEngine().leave_team(request.user, invite_code)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="captain")
    def captain(self, request, invite_code=None):
        view = resolve(invite_code)
        closed = registration_window_error(request.user, view.event)
        if closed:
            return closed

        serializer = TransferCaptainSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        team = TeamFormationEngine().transfer_captain(
            request.user, invite_code, serializer.validated_data["student_id"]
        )
        return Response(TeamSerializer(team).data)
