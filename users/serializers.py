from rest_framework import serializers
from .models import User


class StudentSummarySerializer(serializers.ModelSerializer):
    """Compact student card used on rosters and invite previews."""
    name = serializers.CharField(source='display_name', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'name', 'grade', 'class_name']
        read_only_fields = fields
