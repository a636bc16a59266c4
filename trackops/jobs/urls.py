from django.urls import path
from .views import (
    job_list_create, job_detail, job_assign, job_reassign, job_cancel, job_verify, job_statistics, job_workflow,
    requisition_list_create, requisition_detail, requisition_approve, requisition_reject, requisition_issue,
    requisition_statistics,
    advance_list_create, advance_detail, advance_approve, advance_reject, advance_disburse, advance_statistics,
    checklist_list_create, checklist_detail, checklist_toggle,
    inspection_list, inspection_detail, job_inspections, inspection_submit, inspection_verify, inspection_statistics,
    my_jobs, my_active_job, my_statistics, my_job_start, my_job_progress, my_job_complete, my_job_add_vehicle,
)

urlpatterns = [
    # Job endpoints
    path('jobs/', job_list_create, name='job-list-create'),
    path('jobs/statistics/', job_statistics, name='job-statistics'),
    path('jobs/<int:pk>/', job_detail, name='job-detail'),
    path('jobs/<int:pk>/assign/', job_assign, name='job-assign'),
    path('jobs/<int:pk>/reassign/<int:technician_id>/', job_reassign, name='job-reassign'),
    path('jobs/<int:pk>/cancel/', job_cancel, name='job-cancel'),
    path('jobs/<int:pk>/verify/', job_verify, name='job-verify'),
    path('jobs/<int:pk>/workflow/', job_workflow, name='job-workflow'),

    # Requisition endpoints
    path('requisitions/', requisition_list_create, name='requisition-list-create'),
    path('requisitions/statistics/', requisition_statistics, name='requisition-statistics'),
    path('requisitions/<int:pk>/', requisition_detail, name='requisition-detail'),
    path('requisitions/<int:pk>/approve/', requisition_approve, name='requisition-approve'),
    path('requisitions/<int:pk>/reject/', requisition_reject, name='requisition-reject'),
    path('requisitions/<int:pk>/issue/', requisition_issue, name='requisition-issue'),

    # Advance request endpoints
    path('advance-requests/', advance_list_create, name='advance-list-create'),
    path('advance-requests/statistics/', advance_statistics, name='advance-statistics'),
    path('advance-requests/<int:pk>/', advance_detail, name='advance-detail'),
    path('advance-requests/<int:pk>/approve/', advance_approve, name='advance-approve'),
    path('advance-requests/<int:pk>/reject/', advance_reject, name='advance-reject'),
    path('advance-requests/<int:pk>/disburse/', advance_disburse, name='advance-disburse'),

    # Inspection endpoints
    path('inspections/', inspection_list, name='inspection-list'),
    path('inspections/statistics/', inspection_statistics, name='inspection-statistics'),
    path('inspections/submit/', inspection_submit, name='inspection-submit'),
    path('inspections/checklist/', checklist_list_create, name='checklist-list-create'),
    path('inspections/checklist/<int:pk>/', checklist_detail, name='checklist-detail'),
    path('inspections/checklist/<int:pk>/toggle/', checklist_toggle, name='checklist-toggle'),
    path('inspections/job/<int:job_id>/', job_inspections, name='job-inspections'),
    path('inspections/verify/<int:job_id>/<str:stage>/', inspection_verify, name='inspection-verify'),
    path('inspections/<int:pk>/', inspection_detail, name='inspection-detail'),

    # Technician self-service
    path('technician/jobs/', my_jobs, name='technician-jobs'),
    path('technician/jobs/active/', my_active_job, name='technician-active-job'),
    path('technician/jobs/statistics/', my_statistics, name='technician-job-statistics'),
    path('technician/jobs/<int:pk>/start/', my_job_start, name='technician-job-start'),
    path('technician/jobs/<int:pk>/progress/', my_job_progress, name='technician-job-progress'),
    path('technician/jobs/<int:pk>/complete/', my_job_complete, name='technician-job-complete'),
    path('technician/jobs/<int:pk>/add-vehicle/', my_job_add_vehicle, name='technician-job-add-vehicle'),
]
