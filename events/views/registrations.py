from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.authentication import SessionAuthentication, BasicAuthentication
from rest_framework.pagination import LimitOffsetPagination
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework import status
import logging

from events.exporter import export_rows, render_csv, render_xlsx
from events.models import EventRegistration
from events.policies import RegistrationPolicy
from events.serializers import (
    EventSummarySerializer,
    RegisterIndividualSerializer,
    RegistrationSerializer,
    UpdateRegistrationSerializer,
)
from events.team_engine import TeamFormationEngine
from .generics import api_error, get_event_or_404, registration_window_error

logger = logging.getLogger('cos.events')


class EventDetailView(APIView):
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request, event_id):
        event = get_event_or_404(event_id)
        return Response(EventSummarySerializer(event).data)


class RegisterEventView(APIView):
    """
    POST /api/events/<event_id>/register/
    Body: {"entries": [{"game_type": "短距离", "group": "M12"}]}

    Individual game types only; teams go through /teams/.
    """
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request, event_id):
        event = get_event_or_404(event_id)
        closed = registration_window_error(request.user, event)
        if closed:
            return closed

        serializer = RegisterIndividualSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        reg = TeamFormationEngine().register_individual(
            request.user, event, serializer.validated_data["entries"]
        )
        return Response(RegistrationSerializer(reg).data, status=status.HTTP_201_CREATED)


class EventRegistrationStatusView(APIView):
    """GET /api/events/<event_id>/registration/ - the caller's registration view."""
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request, event_id):
        event = get_event_or_404(event_id)
        reg = (
            EventRegistration.objects
            .filter(event=event, student=request.user)
            .select_related("event", "student")
            .first()
        )

        if not reg:
            return Response({"registered": False}, status=200)

        data = RegistrationSerializer(reg).data
        data["registered"] = reg.is_active
        return Response(data, status=200)


class MyRegistrationsView(APIView):
    """GET /api/events/me/registrations/?event=<id>"""
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request):
        regs = (
            EventRegistration.objects
            .filter(student=request.user)
            .exclude(status=EventRegistration.STATUS_CANCELLED)
            .select_related("event", "student")
            .order_by("-created_at")
        )
        event_id = request.query_params.get("event")
        if event_id:
            regs = regs.filter(event_id=event_id)

        return Response(RegistrationSerializer(regs, many=True).data)


class CancelRegistrationView(APIView):
    """
    POST /api/events/<event_id>/cancel/            (own registration)
    POST /api/events/registrations/<reg_id>/cancel/ (coach)
    """
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request, event_id=None, reg_id=None):
        if reg_id is not None:
            reg = EventRegistration.objects.select_related("event").filter(pk=reg_id).first()
        else:
            reg = (
                EventRegistration.objects.select_related("event")
                .filter(event_id=event_id, student=request.user)
                .first()
            )
        if reg is None:
            return api_error("Registration not found.", status.HTTP_404_NOT_FOUND, code="registration_not_found")

        closed = registration_window_error(request.user, reg.event)
        if closed:
            return closed

        reg = TeamFormationEngine().cancel_registration(request.user, reg)
        return Response(RegistrationSerializer(reg).data)


class RegistrationDetailView(APIView):
    """
    PATCH /api/events/registrations/<reg_id>/ (coach)
    Body: {"status"?: "confirmed", "notes"?: "..."}
    """
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAuthenticated]

    def patch(self, request, reg_id):
        reg = EventRegistration.objects.select_related("event").filter(pk=reg_id).first()
        if reg is None:
            return api_error("Registration not found.", status.HTTP_404_NOT_FOUND, code="registration_not_found")

        serializer = UpdateRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        reg = TeamFormationEngine().update_registration(
            request.user, reg, status=data.get("status"), notes=data.get("notes")
        )
        return Response(RegistrationSerializer(reg).data)


class WithdrawEntryView(APIView):
    """
    POST /api/events/<event_id>/withdraw/
    Body: {"game_type": "接力赛"}
    """
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAuthenticated]

    def post(self, request, event_id):
        event = get_event_or_404(event_id)
        closed = registration_window_error(request.user, event)
        if closed:
            return closed

        game_type = (request.data.get("game_type") or "").strip()
        if not game_type:
            return api_error("game_type is required", code="missing_field")

        reg = TeamFormationEngine().withdraw_entry(request.user, event, game_type)
        return Response(RegistrationSerializer(reg).data)


class EventRegistrationsView(APIView):
    """GET /api/events/<event_id>/registrations/?status=&game_type= (coach)"""
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request, event_id):
        event = get_event_or_404(event_id)

        allowed, reason = RegistrationPolicy.can_manage_event(request.user, event)
        if not allowed:
            return api_error(reason, status.HTTP_403_FORBIDDEN, code="permission_denied")

        regs = (
            EventRegistration.objects
            .filter(event=event)
            .select_related("event", "student")
            .order_by("-created_at")
        )
        status_filter = request.query_params.get("status")
        if status_filter:
            regs = regs.filter(status=status_filter)
        game_type = request.query_params.get("game_type")
        if game_type:
            regs = regs.filter(entries__game_type__name=game_type, entries__is_active=True).distinct()

        paginator = LimitOffsetPagination()
        result_page = paginator.paginate_queryset(regs, request)
        serializer = RegistrationSerializer(result_page, many=True)
        return paginator.get_paginated_response(serializer.data)


class EventRegistrationExportView(APIView):
    """
    GET /api/events/<event_id>/registrations/export/?type=csv|xlsx&status=
    """
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request, event_id):
        event = get_event_or_404(event_id)

        allowed, reason = RegistrationPolicy.can_manage_event(request.user, event)
        if not allowed:
            return api_error(reason, status.HTTP_403_FORBIDDEN, code="permission_denied")

        file_type = request.query_params.get("type", "csv").lower()
        if file_type not in ("csv", "xlsx"):
            return api_error("type must be csv or xlsx", code="unsupported_format")

        rows = export_rows(event, status=request.query_params.get("status"))
        logger.info(f"Registrations exported: event={event.id}, rows={len(rows)}, type={file_type}, by={request.user.id}")

        if file_type == "xlsx":
            return render_xlsx(event, rows)
        return render_csv(event, rows)
