from django.urls import path
from .views import (
    technician_list_create, technician_detail, technician_toggle_availability, nearest_available,
)

urlpatterns = [
    path('technicians/', technician_list_create, name='technician-list-create'),
    path('technicians/nearest-available/', nearest_available, name='technician-nearest-available'),
    path('technicians/<int:pk>/', technician_detail, name='technician-detail'),
    path('technicians/<int:pk>/toggle-availability/', technician_toggle_availability, name='technician-toggle-availability'),
]
