from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import User

@admin.register(User)
class CustomUserAdmin(UserAdmin):
    list_display = ('username', 'real_name', 'email', 'role', 'grade', 'class_name', 'is_staff')
    list_filter = ('role', 'grade', 'is_staff', 'is_superuser', 'is_active')
    search_fields = ('username', 'real_name', 'email')
    fieldsets = UserAdmin.fieldsets + (
        ('Student Profile', {'fields': ('role', 'real_name', 'grade', 'class_name', 'phone')}),
    )
    add_fieldsets = UserAdmin.add_fieldsets + (
        ('Student Profile', {'fields': ('role', 'real_name', 'grade', 'class_name')}),
    )
