"""
Job status state machine.

    PENDING -> ASSIGNED -> [REQUISITION_PENDING -> REQUISITION_APPROVED]
            -> [PRE_INSPECTION_PENDING -> PRE_INSPECTION_APPROVED]
            -> IN_PROGRESS -> [POST_INSPECTION_PENDING] -> COMPLETED -> VERIFIED

Bracketed steps are optional. Rejected requisitions and pre-inspections step
back to ASSIGNED, rejected post-inspections back to IN_PROGRESS. A job can be
cancelled from any state before completion.
"""
import logging

from django.utils import timezone

from trackops.core.exceptions import WorkflowError
from trackops.core.utils import create_audit_log
from .models import JobStatusHistory

logger = logging.getLogger(__name__)

JOB_TRANSITIONS = {
    'PENDING': ['ASSIGNED', 'CANCELLED'],
    'ASSIGNED': ['REQUISITION_PENDING', 'PRE_INSPECTION_PENDING', 'IN_PROGRESS', 'CANCELLED'],
    'REQUISITION_PENDING': ['REQUISITION_APPROVED', 'ASSIGNED', 'CANCELLED'],
    'REQUISITION_APPROVED': ['PRE_INSPECTION_PENDING', 'IN_PROGRESS', 'CANCELLED'],
    'PRE_INSPECTION_PENDING': ['PRE_INSPECTION_APPROVED', 'ASSIGNED', 'CANCELLED'],
    'PRE_INSPECTION_APPROVED': ['IN_PROGRESS', 'CANCELLED'],
    'IN_PROGRESS': ['POST_INSPECTION_PENDING', 'COMPLETED', 'CANCELLED'],
    'POST_INSPECTION_PENDING': ['COMPLETED', 'IN_PROGRESS'],
    'COMPLETED': ['VERIFIED'],
    'VERIFIED': [],
    'CANCELLED': [],
}

TERMINAL_STATUSES = ('VERIFIED', 'CANCELLED')
OPEN_STATUSES = [s for s in JOB_TRANSITIONS if s not in ('COMPLETED', 'VERIFIED', 'CANCELLED')]
# Statuses in which the assigned technician is on the job
ACTIVE_STATUSES = [
    'ASSIGNED', 'REQUISITION_PENDING', 'REQUISITION_APPROVED', 'PRE_INSPECTION_PENDING',
    'PRE_INSPECTION_APPROVED', 'IN_PROGRESS', 'POST_INSPECTION_PENDING',
]
STARTABLE_STATUSES = ('ASSIGNED', 'REQUISITION_APPROVED', 'PRE_INSPECTION_APPROVED')


def allowed_transitions(status):
    return list(JOB_TRANSITIONS.get(status, []))


def can_transition(from_status, to_status):
    return to_status in JOB_TRANSITIONS.get(from_status, [])


def transition_job(job, to_status, user=None, notes='', request=None, extra_fields=None):
    """
    Move a job to to_status, writing a history row and an audit log.

    extra_fields is a dict of additional job attributes saved together with
    the new status.
    """
    from_status = job.status
    if not can_transition(from_status, to_status):
        raise WorkflowError(f"Job {job.job_number} cannot move from {from_status} to {to_status}")

    job.status = to_status
    update_fields = ['status', 'updated_at']
    for field, value in (extra_fields or {}).items():
        setattr(job, field, value)
        update_fields.append(field)
    job.save(update_fields=update_fields)

    JobStatusHistory.objects.create(
        job=job,
        from_status=from_status,
        to_status=to_status,
        notes=notes or '',
        changed_by=user,
    )
    create_audit_log(
        request=request,
        user=user,
        action='job_cancel' if to_status == 'CANCELLED' else 'status_change',
        model_name='Job',
        object_id=str(job.id),
        object_name=job.job_number,
        changes={'from_status': from_status, 'to_status': to_status, 'notes': notes or ''},
    )
    logger.info(f"Job {job.job_number}: {from_status} -> {to_status}")
    return job


def assign_job(job, technicians, user=None, request=None):
    """Assign technicians to a pending job; the first one leads"""
    if not technicians:
        raise WorkflowError('At least one technician is required')
    unavailable = [t.technician_code for t in technicians if not t.is_available]
    if unavailable:
        raise WorkflowError(f"Technicians not available: {', '.join(unavailable)}")

    transition_job(
        job, 'ASSIGNED', user=user, request=request,
        notes=f"Assigned to {', '.join(t.name for t in technicians)}",
        extra_fields={'lead_technician': technicians[0], 'assigned_by': user, 'assigned_at': timezone.now()},
    )
    job.technicians.set(technicians)
    create_audit_log(
        request=request,
        user=user,
        action='job_assign',
        model_name='Job',
        object_id=str(job.id),
        object_name=job.job_number,
        changes={'technicians': [t.id for t in technicians], 'lead_technician': technicians[0].id},
    )
    return job


def reassign_lead(job, technician, user=None, request=None):
    """Replace the lead technician of an assigned, not yet finished job"""
    if job.status not in ACTIVE_STATUSES:
        raise WorkflowError(f"Job {job.job_number} cannot be reassigned in status {job.status}")
    if not technician.is_available:
        raise WorkflowError(f"Technician {technician.technician_code} is not available")

    previous = job.lead_technician
    job.lead_technician = technician
    job.assigned_by = user
    job.assigned_at = timezone.now()
    job.save(update_fields=['lead_technician', 'assigned_by', 'assigned_at', 'updated_at'])
    job.technicians.add(technician)

    JobStatusHistory.objects.create(
        job=job,
        from_status=job.status,
        to_status=job.status,
        notes=f"Lead technician changed from {previous.name if previous else '-'} to {technician.name}",
        changed_by=user,
    )
    create_audit_log(
        request=request,
        user=user,
        action='job_assign',
        model_name='Job',
        object_id=str(job.id),
        object_name=job.job_number,
        changes={'previous_lead': previous.id if previous else None, 'lead_technician': technician.id},
    )
    return job


def cancel_job(job, reason, user=None, request=None):
    if not reason:
        raise WorkflowError('A cancellation reason is required')
    return transition_job(
        job, 'CANCELLED', user=user, request=request, notes=reason,
        extra_fields={'cancellation_reason': reason, 'cancelled_at': timezone.now()},
    )


def verify_job(job, user=None, request=None, payment_verified=None, notes=''):
    extra = {'approved_by': user, 'approved_at': timezone.now()}
    if payment_verified is not None:
        extra['payment_verified'] = bool(payment_verified)
    return transition_job(job, 'VERIFIED', user=user, request=request, notes=notes, extra_fields=extra)
