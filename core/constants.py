# core/constants.py

# --- Activity Verbs (Standard Registry) ---

# Registration lifecycle
ACTIVITY_REGISTRATION_CREATED = "registration.created"
ACTIVITY_REGISTRATION_UPDATED = "registration.updated"
ACTIVITY_REGISTRATION_CANCELLED = "registration.cancelled"
ACTIVITY_REGISTRATION_IMPORTED = "registration.imported"
ACTIVITY_ENTRY_WITHDRAWN = "registration.entry_withdrawn"

# Team formation
ACTIVITY_TEAM_CREATED = "team.created"
ACTIVITY_TEAM_JOINED = "team.joined"
ACTIVITY_TEAM_SWITCHED = "team.switched"
ACTIVITY_TEAM_LEFT = "team.left"
ACTIVITY_TEAM_RETIRED = "team.retired"
ACTIVITY_TEAM_CAPTAIN_TRANSFERRED = "team.captain_transferred"
ACTIVITY_TEAM_RENAMED = "team.renamed"
