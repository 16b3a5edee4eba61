from django.contrib import admin
from .models import Event, GameType, EventRegistration, GameTypeEntry, Team, TeamMember


class GameTypeInline(admin.TabularInline):
    model = GameType
    extra = 0


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ('name', 'organization', 'start_date', 'end_date', 'open_registration')
    list_filter = ('open_registration', 'start_date')
    search_fields = ('name', 'organization')
    date_hierarchy = 'start_date'
    inlines = [GameTypeInline]


class GameTypeEntryInline(admin.TabularInline):
    model = GameTypeEntry
    extra = 0
    raw_id_fields = ('team',)


@admin.register(EventRegistration)
class EventRegistrationAdmin(admin.ModelAdmin):
    list_display = ('student', 'event', 'status', 'created_at')
    list_filter = ('status', 'event')
    search_fields = ('student__username', 'student__real_name', 'event__name')
    inlines = [GameTypeEntryInline]


class TeamMemberInline(admin.TabularInline):
    model = TeamMember
    extra = 0
    readonly_fields = ('student', 'run_order', 'is_captain', 'joined_at')
    can_delete = False


@admin.register(Team)
class TeamAdmin(admin.ModelAdmin):
    # Rosters are changed through the API so counters stay consistent
    list_display = ('name', 'invite_code', 'event', 'game_type', 'member_count', 'capacity', 'status')
    list_filter = ('status', 'event')
    search_fields = ('name', 'invite_code')
    readonly_fields = ('invite_code', 'member_count', 'last_run_order', 'version', 'retired_at')
    inlines = [TeamMemberInline]
