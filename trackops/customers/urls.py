from django.urls import path
from .views import (
    customer_list_create, customer_detail, customer_toggle_status, customer_search,
    customer_statement_view, customer_outstanding_balance, top_customers, customer_full_detail,
    vehicle_list_create, vehicle_detail, customer_vehicles, vehicle_toggle_status, vehicle_statistics,
)

urlpatterns = [
    # Customer endpoints
    path('customers/', customer_list_create, name='customer-list-create'),
    path('customers/search/', customer_search, name='customer-search'),
    path('customers/outstanding-balance/', customer_outstanding_balance, name='customer-outstanding-balance'),
    path('customers/top-customers/', top_customers, name='customer-top'),
    path('customers/customer-detail/<int:pk>/', customer_full_detail, name='customer-full-detail'),
    path('customers/<int:pk>/', customer_detail, name='customer-detail'),
    path('customers/<int:pk>/toggle-status/', customer_toggle_status, name='customer-toggle-status'),
    path('customers/<int:pk>/statement/', customer_statement_view, name='customer-statement'),

    # Vehicle endpoints
    path('vehicles/', vehicle_list_create, name='vehicle-list-create'),
    path('vehicles/statistics/', vehicle_statistics, name='vehicle-statistics'),
    path('vehicles/customer/<int:customer_id>/', customer_vehicles, name='vehicle-by-customer'),
    path('vehicles/<int:pk>/', vehicle_detail, name='vehicle-detail'),
    path('vehicles/<int:pk>/toggle-status/', vehicle_toggle_status, name='vehicle-toggle-status'),
]
