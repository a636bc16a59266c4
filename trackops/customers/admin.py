from django.contrib import admin
from .models import Customer, Vehicle


class VehicleInline(admin.TabularInline):
    model = Vehicle
    extra = 0
    fields = ['vehicle_reg', 'make', 'model', 'vehicle_type', 'is_active']


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['customer_code', 'business_name', 'contact_person', 'phone', 'email', 'customer_type', 'is_active', 'created_at']
    list_filter = ['customer_type', 'is_active', 'city']
    search_fields = ['customer_code', 'business_name', 'contact_person', 'phone', 'email']
    readonly_fields = ['customer_code', 'created_at', 'updated_at']
    inlines = [VehicleInline]


@admin.register(Vehicle)
class VehicleAdmin(admin.ModelAdmin):
    list_display = ['vehicle_reg', 'customer', 'make', 'model', 'vehicle_type', 'year_of_manufacture', 'is_active']
    list_filter = ['vehicle_type', 'is_active', 'make']
    search_fields = ['vehicle_reg', 'chassis_no', 'make', 'model', 'customer__business_name', 'customer__contact_person']
    raw_id_fields = ['customer']
