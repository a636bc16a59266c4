"""
Requisitions, advances, inspections and technician job actions.
Status changes of the job itself go through workflow.transition_job.
"""
import logging

from django.db import transaction
from django.utils import timezone

from trackops.core.exceptions import WorkflowError, InventoryError
from trackops.core.utils import create_audit_log
from trackops.inventory.models import Device
from trackops.inventory.services import (
    change_device_status, deduct_from_batch, fifo_allocation, is_valid_imei,
)
from .models import (
    Requisition, RequisitionItem, AdvanceRequest, ChecklistItem, Inspection, InspectionResult,
)
from .workflow import transition_job, ACTIVE_STATUSES, STARTABLE_STATUSES

logger = logging.getLogger(__name__)


# Requisitions
def create_requisition(job, items, user=None, technician=None, notes='', request=None):
    """Create a stock requisition for an assigned job"""
    if job.status not in ACTIVE_STATUSES:
        raise WorkflowError(f"Requisitions can only be raised for assigned jobs (job is {job.status})")
    technician = technician or job.lead_technician
    if technician is None:
        raise WorkflowError('The job has no lead technician')
    if not items:
        raise WorkflowError('A requisition needs at least one item')

    with transaction.atomic():
        requisition = Requisition.objects.create(
            job=job,
            technician=technician,
            notes=notes or '',
            created_by=user,
        )
        for item in items:
            quantity = item.get('quantity_requested') or 0
            if quantity <= 0:
                raise WorkflowError('Requested quantity must be greater than zero')
            RequisitionItem.objects.create(
                requisition=requisition,
                product=item['product'],
                quantity_requested=quantity,
            )
        if job.status == 'ASSIGNED':
            transition_job(job, 'REQUISITION_PENDING', user=user, request=request,
                           notes=f"Requisition {requisition.requisition_number} raised")

    create_audit_log(
        request=request, user=user, action='create', model_name='Requisition',
        object_id=str(requisition.id), object_name=requisition.requisition_number,
        changes={'job': job.job_number, 'items': len(items)},
    )
    return requisition


def _other_pending_requisitions(requisition):
    return requisition.job.requisitions.filter(status='PENDING').exclude(pk=requisition.pk).exists()


def approve_requisition(requisition, user=None, request=None):
    if requisition.status != 'PENDING':
        raise WorkflowError(f"Requisition is {requisition.status}, only pending requisitions can be approved")

    with transaction.atomic():
        requisition.status = 'APPROVED'
        requisition.approved_by = user
        requisition.approved_at = timezone.now()
        requisition.save(update_fields=['status', 'approved_by', 'approved_at', 'updated_at'])

        job = requisition.job
        if job.status == 'REQUISITION_PENDING' and not _other_pending_requisitions(requisition):
            transition_job(job, 'REQUISITION_APPROVED', user=user, request=request,
                           notes=f"Requisition {requisition.requisition_number} approved")

    create_audit_log(
        request=request, user=user, action='status_change', model_name='Requisition',
        object_id=str(requisition.id), object_name=requisition.requisition_number,
        changes={'status': 'APPROVED'},
    )
    return requisition


def reject_requisition(requisition, reason, user=None, request=None):
    if requisition.status != 'PENDING':
        raise WorkflowError(f"Requisition is {requisition.status}, only pending requisitions can be rejected")
    if not reason:
        raise WorkflowError('A rejection reason is required')

    with transaction.atomic():
        requisition.status = 'REJECTED'
        requisition.rejection_reason = reason
        requisition.save(update_fields=['status', 'rejection_reason', 'updated_at'])

        job = requisition.job
        if job.status == 'REQUISITION_PENDING' and not _other_pending_requisitions(requisition):
            transition_job(job, 'ASSIGNED', user=user, request=request,
                           notes=f"Requisition {requisition.requisition_number} rejected: {reason}")

    create_audit_log(
        request=request, user=user, action='status_change', model_name='Requisition',
        object_id=str(requisition.id), object_name=requisition.requisition_number,
        changes={'status': 'REJECTED', 'reason': reason},
    )
    return requisition


def _issue_devices(item, imeis, quantity, user, requisition):
    if len(imeis) != quantity:
        raise InventoryError(f"{item.product.name} is serialized: provide {quantity} IMEI(s)")
    devices = []
    for imei in imeis:
        device = Device.objects.filter(imei=imei, product=item.product).first()
        if device is None:
            raise InventoryError(f"Device {imei} not found for {item.product.name}")
        if device.status != 'AVAILABLE':
            raise InventoryError(f"Device {imei} is {device.status}, not AVAILABLE")
        change_device_status(device, 'ISSUED', user=user, reference=requisition.requisition_number,
                             notes=f"Issued for job {requisition.job.job_number}")
        devices.append(device)
    item.devices.add(*devices)
    requisition.job.devices.add(*devices)
    return devices


def issue_requisition_items(requisition, issues, user=None, request=None):
    """
    Issue stock against an approved requisition.

    issues is a list of {'item', 'quantity', 'batch' (optional), 'imeis'
    (serialized products)}. Without a batch the quantity is taken oldest
    batch first.
    """
    if requisition.status not in ('APPROVED', 'PARTIALLY_ISSUED'):
        raise WorkflowError(f"Requisition is {requisition.status}; only approved requisitions can be issued")
    if not issues:
        raise WorkflowError('Nothing to issue')
    item_ids = [entry['item'].id for entry in issues]
    if len(item_ids) != len(set(item_ids)):
        raise WorkflowError('Each requisition item can only appear once per issue')

    now = timezone.now()
    issued = []
    with transaction.atomic():
        for entry in issues:
            item = RequisitionItem.objects.select_for_update().get(pk=entry['item'].pk)
            quantity = entry.get('quantity') or 0
            if item.requisition_id != requisition.id:
                raise WorkflowError('Item does not belong to this requisition')
            if quantity <= 0:
                raise WorkflowError('Issued quantity must be greater than zero')
            if quantity > item.quantity_outstanding:
                raise InventoryError(
                    f"Cannot issue {quantity} of {item.product.name}; {item.quantity_outstanding} outstanding"
                )

            batch = entry.get('batch')
            if batch is not None:
                if batch.product_id != item.product_id:
                    raise InventoryError(f"Batch {batch.batch_number} is not for {item.product.name}")
                deduct_from_batch(batch, quantity)
                first_batch = batch
            else:
                plan = fifo_allocation(item.product, quantity)
                for step in plan:
                    deduct_from_batch(step['batch'], step['quantity'])
                first_batch = plan[0]['batch']

            if item.product.is_serialized:
                _issue_devices(item, entry.get('imeis') or [], quantity, user, requisition)

            item.quantity_issued += quantity
            item.batch = first_batch
            item.issued_by = user
            item.issued_at = now
            item.save(update_fields=['quantity_issued', 'batch', 'issued_by', 'issued_at'])
            issued.append({'item': item.id, 'product': item.product.name, 'quantity': quantity})

        fully_issued = all(i.quantity_outstanding <= 0 for i in requisition.items.all())
        requisition.status = 'FULLY_ISSUED' if fully_issued else 'PARTIALLY_ISSUED'
        requisition.save(update_fields=['status', 'updated_at'])

    create_audit_log(
        request=request, user=user, action='requisition_issue', model_name='Requisition',
        object_id=str(requisition.id), object_name=requisition.requisition_number,
        changes={'issued': issued, 'status': requisition.status},
    )
    return requisition


# Advance requests
def approve_advance(advance, user=None, request=None):
    if advance.status != 'PENDING':
        raise WorkflowError(f"Advance request is {advance.status}, only pending requests can be approved")
    advance.status = 'APPROVED'
    advance.approved_by = user
    advance.approved_at = timezone.now()
    advance.save(update_fields=['status', 'approved_by', 'approved_at', 'updated_at'])
    create_audit_log(
        request=request, user=user, action='status_change', model_name='AdvanceRequest',
        object_id=str(advance.id), object_name=advance.request_number, changes={'status': 'APPROVED'},
    )
    return advance


def reject_advance(advance, reason, user=None, request=None):
    if advance.status != 'PENDING':
        raise WorkflowError(f"Advance request is {advance.status}, only pending requests can be rejected")
    if not reason:
        raise WorkflowError('A rejection reason is required')
    advance.status = 'REJECTED'
    advance.rejection_reason = reason
    advance.save(update_fields=['status', 'rejection_reason', 'updated_at'])
    create_audit_log(
        request=request, user=user, action='status_change', model_name='AdvanceRequest',
        object_id=str(advance.id), object_name=advance.request_number,
        changes={'status': 'REJECTED', 'reason': reason},
    )
    return advance


def disburse_advance(advance, method, reference='', user=None, request=None):
    if advance.status != 'APPROVED':
        raise WorkflowError(f"Advance request is {advance.status}, only approved requests can be disbursed")
    valid_methods = dict(AdvanceRequest.DISBURSEMENT_METHOD_CHOICES)
    if method not in valid_methods:
        raise WorkflowError(f"Disbursement method must be one of {', '.join(valid_methods)}")
    advance.status = 'DISBURSED'
    advance.disbursement_method = method
    advance.disbursement_reference = reference or ''
    advance.disbursed_by = user
    advance.disbursed_at = timezone.now()
    advance.save(update_fields=[
        'status', 'disbursement_method', 'disbursement_reference', 'disbursed_by', 'disbursed_at', 'updated_at'
    ])
    create_audit_log(
        request=request, user=user, action='advance_disburse', model_name='AdvanceRequest',
        object_id=str(advance.id), object_name=advance.request_number,
        changes={'amount': str(advance.amount), 'method': method, 'reference': reference or ''},
    )
    return advance


# Inspections
STAGE_PENDING_STATUS = {
    'PRE_INSTALLATION': 'PRE_INSPECTION_PENDING',
    'POST_INSTALLATION': 'POST_INSPECTION_PENDING',
}


def checklist_for_stage(stage):
    queryset = ChecklistItem.objects.filter(is_active=True)
    if stage == 'PRE_INSTALLATION':
        return queryset.filter(applies_to_pre=True)
    return queryset.filter(applies_to_post=True)


def submit_inspection(job, stage, results, user=None, technician=None, notes='', request=None):
    """
    Record an inspection with one result per applicable checklist item and
    move the job to the stage's pending review status.
    """
    if stage not in STAGE_PENDING_STATUS:
        raise WorkflowError(f"Unknown inspection stage: {stage}")
    if job.inspections.filter(stage=stage, status='PENDING').exists():
        raise WorkflowError(f"A {stage.lower().replace('_', '-')} inspection is already awaiting review")

    checklist = {item.id: item for item in checklist_for_stage(stage)}
    answered = {}
    for result in results:
        item = result['checklist_item']
        if item.id not in checklist:
            raise WorkflowError(f"Checklist item '{item.name}' does not apply to this stage")
        if item.id in answered:
            raise WorkflowError(f"Checklist item '{item.name}' answered twice")
        if item.requires_photo and result.get('check_status') != 'NOT_CHECKED' and not result.get('photo_urls'):
            raise WorkflowError(f"Checklist item '{item.name}' requires a photo")
        answered[item.id] = result

    missing = [item.name for item_id, item in checklist.items() if item_id not in answered]
    if missing:
        raise WorkflowError(f"Missing checklist items: {', '.join(missing)}")

    technician = technician or job.lead_technician
    with transaction.atomic():
        transition_job(job, STAGE_PENDING_STATUS[stage], user=user, request=request,
                       notes=f"{stage.replace('_', ' ').title()} inspection submitted")
        inspection = Inspection.objects.create(
            job=job,
            stage=stage,
            technician=technician,
            notes=notes or '',
            submitted_by=user,
        )
        InspectionResult.objects.bulk_create([
            InspectionResult(
                inspection=inspection,
                checklist_item=result['checklist_item'],
                check_status=result.get('check_status', 'NOT_CHECKED'),
                notes=result.get('notes', ''),
                photo_urls=result.get('photo_urls') or [],
            )
            for result in answered.values()
        ])

    create_audit_log(
        request=request, user=user, action='inspection_submit', model_name='Inspection',
        object_id=str(inspection.id), object_name=job.job_number,
        changes={'stage': stage, 'results': len(answered)},
    )
    return inspection


def review_inspection(job, stage, approve, user=None, review_notes='', request=None):
    """Approve or reject the pending inspection of a stage and move the job accordingly"""
    inspection = job.inspections.filter(stage=stage, status='PENDING').order_by('-submitted_at').first()
    if inspection is None:
        raise WorkflowError(f"No pending {stage.lower().replace('_', '-')} inspection for job {job.job_number}")
    if not approve and not review_notes:
        raise WorkflowError('A reason is required to reject an inspection')

    with transaction.atomic():
        inspection.status = 'APPROVED' if approve else 'REJECTED'
        inspection.reviewed_by = user
        inspection.reviewed_at = timezone.now()
        inspection.review_notes = review_notes or ''
        inspection.save(update_fields=['status', 'reviewed_by', 'reviewed_at', 'review_notes'])

        if stage == 'PRE_INSTALLATION':
            target = 'PRE_INSPECTION_APPROVED' if approve else 'ASSIGNED'
            transition_job(job, target, user=user, request=request, notes=review_notes)
        elif approve:
            finish_job(job, user=user, request=request, notes=review_notes or 'Post-installation inspection approved')
        else:
            transition_job(job, 'IN_PROGRESS', user=user, request=request, notes=review_notes)

    return inspection


# Technician actions
def ensure_job_technician(job, technician):
    if technician is None or not job.technicians.filter(pk=technician.pk).exists():
        raise WorkflowError('You are not assigned to this job')


def start_job(job, technician, user=None, gps_coordinates='', request=None):
    ensure_job_technician(job, technician)
    if job.status not in STARTABLE_STATUSES:
        raise WorkflowError(f"Job {job.job_number} cannot be started while {job.status}")
    extra = {'start_time': timezone.now()}
    if gps_coordinates:
        extra['gps_coordinates'] = gps_coordinates
    return transition_job(job, 'IN_PROGRESS', user=user, request=request,
                          notes=f"Started by {technician.name}", extra_fields=extra)


def _clean_imeis(imeis):
    cleaned = []
    for imei in imeis or []:
        imei = str(imei).strip()
        if not is_valid_imei(imei):
            raise WorkflowError(f"Invalid IMEI '{imei}': must be exactly 15 digits")
        if imei not in cleaned:
            cleaned.append(imei)
    return cleaned


def record_progress(job, technician, data):
    """Save installation details captured while the job is in progress"""
    ensure_job_technician(job, technician)
    if job.status != 'IN_PROGRESS':
        raise WorkflowError('Progress can only be recorded for jobs in progress')

    update_fields = ['updated_at']
    if 'imei_numbers' in data:
        job.imei_numbers = _clean_imeis(data.get('imei_numbers'))
        update_fields.append('imei_numbers')
    if data.get('photo_urls'):
        job.photo_urls = list(job.photo_urls or []) + [u for u in data['photo_urls'] if u not in (job.photo_urls or [])]
        update_fields.append('photo_urls')
    for field in ('gps_coordinates', 'installation_notes', 'device_position'):
        if field in data:
            setattr(job, field, data.get(field) or '')
            update_fields.append(field)
    job.save(update_fields=update_fields)
    return job


def activate_job_devices(job, user=None):
    """Bring every device listed on the job to ACTIVE on the job's vehicle"""
    activated = []
    for imei in job.imei_numbers or []:
        device = Device.objects.filter(imei=imei).first()
        if device is None:
            raise WorkflowError(f"Device with IMEI {imei} is not registered in inventory")
        if device.status == 'ACTIVE' and device.vehicle_id == job.vehicle_id:
            continue
        if device.status == 'AVAILABLE':
            change_device_status(device, 'ISSUED', user=user, reference=job.job_number,
                                 notes='Issued on job completion')
        change_device_status(device, 'ACTIVE', user=user, reference=job.job_number,
                             notes=job.installation_notes, vehicle=job.vehicle)
        job.devices.add(device)
        activated.append(device)
    return activated


def finish_job(job, user=None, request=None, notes=''):
    with transaction.atomic():
        try:
            activate_job_devices(job, user=user)
        except InventoryError as e:
            raise WorkflowError(str(e)) from e
        return transition_job(job, 'COMPLETED', user=user, request=request, notes=notes,
                              extra_fields={'end_time': timezone.now()})


def complete_job(job, technician, data, user=None, request=None):
    """Technician completion: IMEIs and photos are mandatory"""
    ensure_job_technician(job, technician)
    if job.status != 'IN_PROGRESS':
        raise WorkflowError(f"Job {job.job_number} cannot be completed while {job.status}")

    imeis = _clean_imeis(data.get('imei_numbers') or job.imei_numbers)
    photos = data.get('photo_urls') or job.photo_urls
    if not imeis:
        raise WorkflowError('At least one device IMEI is required to complete the job')
    if not photos:
        raise WorkflowError('Installation photos are required to complete the job')

    job.imei_numbers = imeis
    job.photo_urls = list(photos)
    for field in ('gps_coordinates', 'installation_notes', 'device_position'):
        if data.get(field):
            setattr(job, field, data[field])
    job.save(update_fields=['imei_numbers', 'photo_urls', 'gps_coordinates', 'installation_notes',
                            'device_position', 'updated_at'])
    return finish_job(job, user=user, request=request, notes=data.get('notes') or f"Completed by {technician.name}")
