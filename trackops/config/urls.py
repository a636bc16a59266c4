"""
URL configuration for the trackops project.

Every app publishes its endpoints under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "TrackOps Administration"
admin.site.site_title = "TrackOps Admin Portal"
admin.site.index_title = "Installations, Billing & Subscriptions"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('trackops.core.urls')),
    path('api/v1/', include('trackops.customers.urls')),
    path('api/v1/', include('trackops.technicians.urls')),
    path('api/v1/', include('trackops.inventory.urls')),
    path('api/v1/', include('trackops.jobs.urls')),
    path('api/v1/', include('trackops.billing.urls')),
    path('api/v1/', include('trackops.subscriptions.urls')),
    path('api/v1/', include('trackops.notifications.urls')),
    path('api/v1/', include('trackops.migration.urls')),
    path('api/v1/', include('trackops.reports.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
]
