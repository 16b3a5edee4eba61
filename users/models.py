# users/models.py
from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    ROLE_STUDENT = 'student'
    ROLE_COACH = 'coach'
    ROLE_ADMIN = 'admin'

    ROLE_CHOICES = (
        (ROLE_STUDENT, 'Student'),
        (ROLE_COACH, 'Coach'),
        (ROLE_ADMIN, 'Admin'),
    )

    role = models.CharField(
        max_length=30,
        choices=ROLE_CHOICES,
        default=ROLE_STUDENT
    )

    # Display name used on rosters and as the key for spreadsheet imports
    real_name = models.CharField(max_length=100, blank=True, default='', db_index=True)
    grade = models.CharField(max_length=32, blank=True, default='')
    class_name = models.CharField(max_length=32, blank=True, default='')
    phone = models.CharField(max_length=20, blank=True, null=True)

    @property
    def display_name(self):
        return self.real_name or self.username

    @property
    def is_coach(self):
        return self.is_superuser or self.role in (self.ROLE_COACH, self.ROLE_ADMIN)

    def __str__(self):
        return self.display_name
