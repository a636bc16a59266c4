from django.urls import path
from .views import (
    subscription_list_create, subscription_detail, subscription_cancel, customer_subscriptions,
    subscription_dashboard_stats, subscription_check_expiry, subscription_generate_renewal_invoice,
)

urlpatterns = [
    path('subscriptions/', subscription_list_create, name='subscription-list-create'),
    path('subscriptions/dashboard-stats/', subscription_dashboard_stats, name='subscription-dashboard-stats'),
    path('subscriptions/check-expiry/', subscription_check_expiry, name='subscription-check-expiry'),
    path('subscriptions/customer/<int:customer_id>/', customer_subscriptions, name='customer-subscriptions'),
    path('subscriptions/<int:pk>/', subscription_detail, name='subscription-detail'),
    path('subscriptions/<int:pk>/cancel/', subscription_cancel, name='subscription-cancel'),
    path('subscriptions/<int:pk>/generate-renewal-invoice/', subscription_generate_renewal_invoice,
         name='subscription-generate-renewal-invoice'),
]
