from django.urls import path
from . import views

urlpatterns = [
    path('migration-upload/jobs/validate/', views.validate_jobs, name='migration-validate-jobs'),
    path('migration-upload/jobs/import/', views.import_jobs_view, name='migration-import-jobs'),
    path('migration-upload/template/', views.download_template, name='migration-template'),
]
