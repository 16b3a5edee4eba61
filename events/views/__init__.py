from .registrations import (
    EventDetailView,
    RegisterEventView,
    EventRegistrationStatusView,
    MyRegistrationsView,
    CancelRegistrationView,
    RegistrationDetailView,
    WithdrawEntryView,
    EventRegistrationsView,
    EventRegistrationExportView,
)
from .teams import CreateOrJoinTeamView, TeamViewSet
from .imports import RegistrationImportView
from .generics import api_error
