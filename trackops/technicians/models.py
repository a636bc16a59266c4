from django.db import models
from decimal import Decimal
from trackops.core.models import User
from trackops.core.utils import generate_reference


class Technician(models.Model):
    """Field technician profile attached to a TECHNICIAN user"""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='technician_profile')
    technician_code = models.CharField(max_length=50, unique=True, blank=True)
    specialization = models.JSONField(default=list, blank=True)
    location = models.CharField(max_length=255, blank=True)
    id_number = models.CharField(max_length=50, blank=True)
    is_available = models.BooleanField(default=True)
    rating = models.DecimalField(max_digits=3, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        if not self.technician_code:
            self.technician_code = generate_reference('TECH', Technician, 'technician_code')
        super().save(*args, **kwargs)

    @property
    def name(self):
        return self.user.display_name

    def __str__(self):
        return f"{self.technician_code} - {self.name}"

    class Meta:
        db_table = 'technicians'
        ordering = ['technician_code']
