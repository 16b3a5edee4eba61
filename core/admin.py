from django.contrib import admin
from .models import DomainActivity


@admin.register(DomainActivity)
class DomainActivityAdmin(admin.ModelAdmin):
    list_display = ('verb', 'actor', 'event', 'object_id', 'timestamp')
    list_filter = ('verb', 'visibility', 'timestamp')
    search_fields = ('verb', 'actor__username', 'event__name')
    readonly_fields = ('actor', 'verb', 'content_type', 'object_id', 'event', 'visibility', 'metadata', 'timestamp')
