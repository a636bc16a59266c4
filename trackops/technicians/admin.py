from django.contrib import admin
from .models import Technician


@admin.register(Technician)
class TechnicianAdmin(admin.ModelAdmin):
    list_display = ['technician_code', 'user', 'location', 'is_available', 'rating', 'created_at']
    list_filter = ['is_available', 'location']
    search_fields = ['technician_code', 'user__username', 'user__first_name', 'user__last_name', 'user__phone']
    raw_id_fields = ['user']
