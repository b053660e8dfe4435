from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with role selection"""
    ROLE_CHOICES = [
        ('admin', 'Administrator'),
        ('manager', 'Franchise Manager'),
        ('office_staff', 'Office Staff'),
        ('driver', 'Driver'),
    ]
    OFFICE_ROLES = ('admin', 'manager', 'office_staff')

    # Role & basic info
    role = models.CharField(max_length=20, choices=ROLE_CHOICES)
    phone_number = models.CharField(max_length=15, blank=True)
    franchise = models.ForeignKey(
        'franchises.Franchise',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='staff',
    )

    class Meta:
        db_table = 'users'

    @property
    def is_office_user(self):
        return self.role in self.OFFICE_ROLES

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
