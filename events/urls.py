from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import (
    EventDetailView,
    RegisterEventView,
    EventRegistrationStatusView,
    MyRegistrationsView,
    CancelRegistrationView,
    RegistrationDetailView,
    WithdrawEntryView,
    EventRegistrationsView,
    EventRegistrationExportView,
    CreateOrJoinTeamView,
    TeamViewSet,
    RegistrationImportView,
)

router = DefaultRouter()
router.register(r"teams", TeamViewSet, basename="event-teams")

urlpatterns = [
    path("<int:event_id>/", EventDetailView.as_view(), name="event-detail"),

    # Registration (student)
    path("<int:event_id>/register/", RegisterEventView.as_view(), name="event-register"),
    path("<int:event_id>/registration/", EventRegistrationStatusView.as_view(), name="event-registration-status"),
    path("<int:event_id>/cancel/", CancelRegistrationView.as_view(), name="event-cancel"),
    path("<int:event_id>/withdraw/", WithdrawEntryView.as_view(), name="event-withdraw"),
    path("<int:event_id>/teams/", CreateOrJoinTeamView.as_view(), name="event-teams-create-or-join"),
    path("me/registrations/", MyRegistrationsView.as_view(), name="my-registrations"),

    # Coach
    path("<int:event_id>/registrations/", EventRegistrationsView.as_view(), name="event-registrations"),
    path(
        "<int:event_id>/registrations/export/",
        EventRegistrationExportView.as_view(),
        name="event-registrations-export",
    ),
    path("registrations/<int:reg_id>/", RegistrationDetailView.as_view(), name="registration-detail"),
    path("registrations/<int:reg_id>/cancel/", CancelRegistrationView.as_view(), name="registration-cancel"),
    path("registrations/import/", RegistrationImportView.as_view(), name="registration-import"),
]

urlpatterns += router.urls
