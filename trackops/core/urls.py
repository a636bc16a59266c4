from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView
from .views import (
    LoginView, user_me, change_password,
    user_list_create, user_detail, user_toggle_status, user_reset_password,
    setting_list_create, setting_values, setting_detail,
    audit_log_list, audit_log_detail,
)

urlpatterns = [
    # Auth endpoints
    path('auth/login/', LoginView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('auth/me/', user_me, name='user-me'),
    path('auth/change-password/', change_password, name='change-password'),

    # User endpoints
    path('users/', user_list_create, name='user-list-create'),
    path('users/<int:pk>/', user_detail, name='user-detail'),
    path('users/<int:pk>/toggle-status/', user_toggle_status, name='user-toggle-status'),
    path('users/<int:pk>/reset-password/', user_reset_password, name='user-reset-password'),

    # Setting endpoints
    path('settings/', setting_list_create, name='setting-list-create'),
    path('settings/all/', setting_values, name='setting-values'),
    path('settings/<int:pk>/', setting_detail, name='setting-detail'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),
    path('audit-logs/<int:pk>/', audit_log_detail, name='audit-log-detail'),
]
