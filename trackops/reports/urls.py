from django.urls import path
from . import views

urlpatterns = [
    path('dashboard/overview/', views.dashboard_overview, name='dashboard-overview'),
    path('reports/revenue/', views.revenue_report, name='reports-revenue'),
]
