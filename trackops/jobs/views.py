import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.db.models import Count, Sum, Q
from django.db.models.deletion import ProtectedError
from django.shortcuts import get_object_or_404
from django.utils import timezone

from trackops.core.exceptions import BusinessRuleError
from trackops.core.permissions import module_permission, action_permission
from trackops.core.utils import create_audit_log, paginate
from trackops.customers.models import Vehicle
from trackops.customers.serializers import VehicleSerializer
from trackops.notifications.services import notify_roles, notify_user
from trackops.technicians.models import Technician
from .filters import JobFilter, RequisitionFilter, AdvanceRequestFilter, InspectionFilter
from .models import Job, Requisition, AdvanceRequest, ChecklistItem, Inspection
from .serializers import (
    JobSerializer, JobListSerializer, JobStatusHistorySerializer, JobAssignSerializer,
    RequisitionSerializer, RequisitionCreateSerializer, RequisitionIssueSerializer,
    AdvanceRequestSerializer, ChecklistItemSerializer, InspectionSerializer, InspectionSubmitSerializer,
)
from .services import (
    create_requisition, approve_requisition, reject_requisition, issue_requisition_items,
    approve_advance, reject_advance, disburse_advance, checklist_for_stage,
    submit_inspection, review_inspection, start_job, record_progress, complete_job, ensure_job_technician,
)
from .workflow import assign_job, reassign_lead, cancel_job, verify_job, ACTIVE_STATUSES, OPEN_STATUSES

logger = logging.getLogger(__name__)


def _job_queryset():
    return Job.objects.select_related(
        'customer', 'vehicle', 'lead_technician__user'
    ).prefetch_related('products', 'technicians__user')


def _technician_for(request):
    """Technician profile of the requesting user, or None"""
    return Technician.objects.select_related('user').filter(user=request.user).first()


def _is_technician(request):
    return getattr(request.user, 'role', None) == 'TECHNICIAN' and not request.user.is_superuser


def _error(e):
    return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)


# Job views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('jobs')])
def job_list_create(request):
    """List jobs with filters or create a new (PENDING) job"""
    if request.method == 'GET':
        queryset = JobFilter(request.query_params, queryset=_job_queryset()).qs
        return paginate(request, queryset, JobListSerializer)

    serializer = JobSerializer(data=request.data)
    if serializer.is_valid():
        job = serializer.save(created_by=request.user)
        create_audit_log(
            request=request,
            action='create',
            model_name='Job',
            object_id=str(job.id),
            object_name=job.job_number,
            changes={'customer': job.customer_id, 'job_type': job.job_type},
        )
        logger.info(f"Job {job.job_number} created by {request.user.username}")
        return Response(JobSerializer(job).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('jobs')])
def job_detail(request, pk):
    job = get_object_or_404(_job_queryset(), pk=pk)
    if request.method == 'GET':
        return Response(JobSerializer(job).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = JobSerializer(job, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            job = serializer.save()
            create_audit_log(
                request=request,
                action='update',
                model_name='Job',
                object_id=str(job.id),
                object_name=job.job_number,
                changes={key: str(value) for key, value in serializer.validated_data.items()},
            )
            return Response(JobSerializer(job).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if job.status not in ('PENDING', 'CANCELLED'):
            return Response(
                {'error': 'Only pending or cancelled jobs can be deleted'},
                status=status.HTTP_400_BAD_REQUEST
            )
        if job.invoices.exists():
            return Response({'error': 'Job has invoices and cannot be deleted'}, status=status.HTTP_400_BAD_REQUEST)
        job_number = job.job_number
        try:
            job.delete()
        except ProtectedError:
            return Response({'error': 'Job is referenced by other records'}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='Job', object_id=str(pk), object_name=job_number)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('jobs.assign')])
def job_assign(request, pk):
    """Assign technicians; the first id becomes the lead technician"""
    job = get_object_or_404(Job, pk=pk)
    serializer = JobAssignSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    technicians = serializer.validated_data['technicians']
    try:
        with transaction.atomic():
            assign_job(job, technicians, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)

    for technician in technicians:
        notify_user(
            technician.user,
            'New job assigned',
            f"You have been assigned to job {job.job_number} for {job.customer.display_name}",
            link=f"/technician/jobs/{job.id}",
        )
    return Response(JobSerializer(job).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('jobs.assign')])
def job_reassign(request, pk, technician_id):
    job = get_object_or_404(Job, pk=pk)
    technician = get_object_or_404(Technician.objects.select_related('user'), pk=technician_id)
    try:
        with transaction.atomic():
            reassign_lead(job, technician, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    notify_user(technician.user, 'Job reassigned to you', f"You are now the lead technician on {job.job_number}",
                link=f"/technician/jobs/{job.id}")
    return Response(JobSerializer(job).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('jobs.cancel')])
def job_cancel(request, pk):
    job = get_object_or_404(Job, pk=pk)
    reason = (request.data.get('reason') or '').strip()
    try:
        with transaction.atomic():
            cancel_job(job, reason, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    return Response(JobSerializer(job).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('jobs.verify')])
def job_verify(request, pk):
    """Verify a completed job, optionally flagging payment as verified"""
    job = get_object_or_404(Job, pk=pk)
    payment_verified = request.data.get('payment_verified')
    if isinstance(payment_verified, str):
        payment_verified = payment_verified.lower() in ('true', '1', 'yes')
    try:
        with transaction.atomic():
            verify_job(job, user=request.user, request=request, payment_verified=payment_verified,
                       notes=request.data.get('notes', ''))
    except BusinessRuleError as e:
        return _error(e)
    return Response(JobSerializer(job).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('jobs')])
def job_statistics(request):
    counts = dict(Job.objects.values_list('status').annotate(count=Count('id')))
    today = timezone.localdate()
    return Response({
        'total_jobs': sum(counts.values()),
        'by_status': {code: counts.get(code, 0) for code, _ in Job.STATUS_CHOICES},
        'open_jobs': sum(counts.get(code, 0) for code in OPEN_STATUSES),
        'scheduled_today': Job.objects.filter(scheduled_date=today).exclude(status='CANCELLED').count(),
        'completed_this_month': Job.objects.filter(
            status__in=['COMPLETED', 'VERIFIED'], end_time__year=today.year, end_time__month=today.month
        ).count(),
        'unassigned': counts.get('PENDING', 0),
        'awaiting_verification': counts.get('COMPLETED', 0),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('jobs')])
def job_workflow(request, pk):
    """Everything that happened on a job, for the job timeline page"""
    from trackops.billing.serializers import InvoiceListSerializer
    from trackops.billing.services import active_job_invoice

    job = get_object_or_404(_job_queryset(), pk=pk)
    invoice = active_job_invoice(job)
    return Response({
        'job': JobSerializer(job).data,
        'history': JobStatusHistorySerializer(job.status_history.select_related('changed_by'), many=True).data,
        'requisitions': RequisitionSerializer(
            job.requisitions.select_related('technician__user').prefetch_related('items__product'), many=True
        ).data,
        'advance_requests': AdvanceRequestSerializer(job.advance_requests.select_related('technician__user'), many=True).data,
        'inspections': InspectionSerializer(
            job.inspections.select_related('technician__user').prefetch_related('results__checklist_item'), many=True
        ).data,
        'invoice': InvoiceListSerializer(invoice).data if invoice else None,
    })


# Requisition views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('requisitions')])
def requisition_list_create(request):
    if request.method == 'GET':
        queryset = Requisition.objects.select_related('job', 'technician__user').prefetch_related('items__product')
        if _is_technician(request):
            queryset = queryset.filter(technician__user=request.user)
        queryset = RequisitionFilter(request.query_params, queryset=queryset).qs
        return paginate(request, queryset, RequisitionSerializer)

    serializer = RequisitionCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    job = data['job']
    technician = data.get('technician')
    if _is_technician(request):
        technician = _technician_for(request)
    try:
        if technician is not None:
            ensure_job_technician(job, technician)
        requisition = create_requisition(
            job, data['items'], user=request.user, technician=technician,
            notes=data.get('notes', ''), request=request,
        )
    except BusinessRuleError as e:
        return _error(e)

    notify_roles(
        ['MANAGER'],
        'Requisition awaiting approval',
        f"{requisition.requisition_number} for job {job.job_number}",
        link=f"/requisitions/{requisition.id}",
    )
    return Response(RequisitionSerializer(requisition).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('requisitions')])
def requisition_detail(request, pk):
    requisition = get_object_or_404(
        Requisition.objects.select_related('job', 'technician__user').prefetch_related('items__product'), pk=pk
    )
    if request.method == 'GET':
        return Response(RequisitionSerializer(requisition).data)
    if requisition.status != 'PENDING':
        return Response({'error': 'Only pending requisitions can be deleted'}, status=status.HTTP_400_BAD_REQUEST)
    number = requisition.requisition_number
    requisition.delete()
    create_audit_log(request=request, action='delete', model_name='Requisition', object_id=str(pk), object_name=number)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('requisitions.approve')])
def requisition_approve(request, pk):
    requisition = get_object_or_404(Requisition.objects.select_related('job', 'technician__user'), pk=pk)
    try:
        approve_requisition(requisition, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    notify_user(requisition.technician.user, 'Requisition approved',
                f"{requisition.requisition_number} was approved", 'SUCCESS')
    return Response(RequisitionSerializer(requisition).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('requisitions.approve')])
def requisition_reject(request, pk):
    requisition = get_object_or_404(Requisition.objects.select_related('job', 'technician__user'), pk=pk)
    reason = (request.data.get('reason') or '').strip()
    try:
        reject_requisition(requisition, reason, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    notify_user(requisition.technician.user, 'Requisition rejected',
                f"{requisition.requisition_number} was rejected: {reason}", 'WARNING')
    return Response(RequisitionSerializer(requisition).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('requisitions.issue')])
def requisition_issue(request, pk):
    """Issue stock against requisition items (batch optional, IMEIs for serialized products)"""
    requisition = get_object_or_404(Requisition.objects.select_related('job'), pk=pk)
    serializer = RequisitionIssueSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        issue_requisition_items(requisition, serializer.validated_data['items'], user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    requisition.refresh_from_db()
    return Response(RequisitionSerializer(requisition).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('requisitions')])
def requisition_statistics(request):
    counts = dict(Requisition.objects.values_list('status').annotate(count=Count('id')))
    return Response({
        'total': sum(counts.values()),
        'by_status': {code: counts.get(code, 0) for code, _ in Requisition.STATUS_CHOICES},
    })


# Advance request views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('advance_requests')])
def advance_list_create(request):
    if request.method == 'GET':
        queryset = AdvanceRequest.objects.select_related('job', 'technician__user')
        if _is_technician(request):
            queryset = queryset.filter(technician__user=request.user)
        queryset = AdvanceRequestFilter(request.query_params, queryset=queryset).qs
        return paginate(request, queryset, AdvanceRequestSerializer)

    serializer = AdvanceRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    job = serializer.validated_data['job']
    technician = serializer.validated_data.get('technician') or job.lead_technician
    if _is_technician(request):
        technician = _technician_for(request)
    if technician is None:
        return Response({'error': 'The job has no lead technician'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        ensure_job_technician(job, technician)
    except BusinessRuleError as e:
        return _error(e)

    advance = serializer.save(technician=technician)
    create_audit_log(
        request=request,
        action='create',
        model_name='AdvanceRequest',
        object_id=str(advance.id),
        object_name=advance.request_number,
        changes={'job': job.job_number, 'amount': str(advance.amount), 'type': advance.advance_type},
    )
    notify_roles(
        ['MANAGER', 'FINANCE'],
        'Advance request awaiting approval',
        f"{advance.request_number}: {advance.get_advance_type_display()} {advance.amount} for {job.job_number}",
        link=f"/advance-requests/{advance.id}",
    )
    return Response(AdvanceRequestSerializer(advance).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('advance_requests')])
def advance_detail(request, pk):
    advance = get_object_or_404(AdvanceRequest.objects.select_related('job', 'technician__user'), pk=pk)
    if request.method == 'GET':
        return Response(AdvanceRequestSerializer(advance).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = AdvanceRequestSerializer(advance, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if advance.status != 'PENDING':
            return Response({'error': 'Only pending advance requests can be deleted'}, status=status.HTTP_400_BAD_REQUEST)
        advance.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('advance_requests.approve')])
def advance_approve(request, pk):
    advance = get_object_or_404(AdvanceRequest.objects.select_related('technician__user'), pk=pk)
    try:
        approve_advance(advance, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    notify_user(advance.technician.user, 'Advance approved', f"{advance.request_number} was approved", 'SUCCESS')
    return Response(AdvanceRequestSerializer(advance).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('advance_requests.approve')])
def advance_reject(request, pk):
    advance = get_object_or_404(AdvanceRequest.objects.select_related('technician__user'), pk=pk)
    reason = (request.data.get('reason') or '').strip()
    try:
        reject_advance(advance, reason, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    notify_user(advance.technician.user, 'Advance rejected', f"{advance.request_number} was rejected: {reason}", 'WARNING')
    return Response(AdvanceRequestSerializer(advance).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('advance_requests.disburse')])
def advance_disburse(request, pk):
    advance = get_object_or_404(AdvanceRequest.objects.select_related('technician__user'), pk=pk)
    method = (request.data.get('disbursement_method') or '').upper()
    if method not in dict(AdvanceRequest.DISBURSEMENT_METHOD_CHOICES):
        return Response({'error': 'disbursement_method must be CASH, MPESA or BANK_TRANSFER'},
                        status=status.HTTP_400_BAD_REQUEST)
    try:
        disburse_advance(advance, method, request.data.get('disbursement_reference', ''),
                         user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)
    notify_user(advance.technician.user, 'Advance disbursed',
                f"{advance.amount} for {advance.request_number} was sent via {advance.get_disbursement_method_display()}",
                'SUCCESS')
    return Response(AdvanceRequestSerializer(advance).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('advance_requests')])
def advance_statistics(request):
    queryset = AdvanceRequest.objects.all()
    counts = dict(queryset.values_list('status').annotate(count=Count('id')))
    totals = queryset.aggregate(
        total_requested=Sum('amount'),
        total_disbursed=Sum('amount', filter=Q(status='DISBURSED')),
        total_pending=Sum('amount', filter=Q(status='PENDING')),
    )
    return Response({
        'total': sum(counts.values()),
        'by_status': {code: counts.get(code, 0) for code, _ in AdvanceRequest.STATUS_CHOICES},
        'total_requested': totals['total_requested'] or 0,
        'total_disbursed': totals['total_disbursed'] or 0,
        'total_pending': totals['total_pending'] or 0,
    })


# Inspection checklist views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('inspections')])
def checklist_list_create(request):
    if request.method == 'GET':
        stage = request.query_params.get('stage')
        if stage:
            queryset = checklist_for_stage(stage.upper())
        else:
            queryset = ChecklistItem.objects.all()
            if request.query_params.get('is_active') in ('true', '1'):
                queryset = queryset.filter(is_active=True)
        category = request.query_params.get('category')
        if category:
            queryset = queryset.filter(category=category.upper())
        return Response(ChecklistItemSerializer(queryset, many=True).data)

    serializer = ChecklistItemSerializer(data=request.data)
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('inspections')])
def checklist_detail(request, pk):
    item = get_object_or_404(ChecklistItem, pk=pk)
    if request.method == 'GET':
        return Response(ChecklistItemSerializer(item).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ChecklistItemSerializer(item, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        try:
            item.delete()
        except ProtectedError:
            return Response(
                {'error': 'Checklist item has recorded results; deactivate it instead'},
                status=status.HTTP_400_BAD_REQUEST
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('inspections.update')])
def checklist_toggle(request, pk):
    item = get_object_or_404(ChecklistItem, pk=pk)
    item.is_active = not item.is_active
    item.save(update_fields=['is_active'])
    return Response(ChecklistItemSerializer(item).data)


# Inspection views
@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('inspections')])
def inspection_list(request):
    queryset = Inspection.objects.select_related('job', 'technician__user').prefetch_related('results__checklist_item')
    if _is_technician(request):
        queryset = queryset.filter(technician__user=request.user)
    queryset = InspectionFilter(request.query_params, queryset=queryset).qs
    return paginate(request, queryset, InspectionSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('inspections')])
def inspection_detail(request, pk):
    inspection = get_object_or_404(
        Inspection.objects.select_related('job', 'technician__user').prefetch_related('results__checklist_item'), pk=pk
    )
    return Response(InspectionSerializer(inspection).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('inspections')])
def job_inspections(request, job_id):
    job = get_object_or_404(Job, pk=job_id)
    inspections = job.inspections.select_related('technician__user').prefetch_related('results__checklist_item')
    return Response(InspectionSerializer(inspections, many=True).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('inspections.create')])
def inspection_submit(request):
    serializer = InspectionSubmitSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    job = data['job']
    technician = _technician_for(request) if _is_technician(request) else None
    try:
        if technician is not None:
            ensure_job_technician(job, technician)
        inspection = submit_inspection(
            job, data['stage'], data['results'], user=request.user, technician=technician,
            notes=data.get('notes', ''), request=request,
        )
    except BusinessRuleError as e:
        return _error(e)

    notify_roles(
        ['MANAGER', 'SUPPORT'],
        'Inspection awaiting review',
        f"{inspection.get_stage_display()} inspection submitted for {job.job_number}",
        link=f"/jobs/{job.id}",
    )
    return Response(InspectionSerializer(inspection).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('inspections.approve')])
def inspection_verify(request, job_id, stage):
    """Approve (approve=true, default) or reject (approve=false with notes) a stage inspection"""
    job = get_object_or_404(Job, pk=job_id)
    stage = stage.upper()
    if stage not in dict(Inspection.STAGE_CHOICES):
        return Response({'error': f'Unknown inspection stage: {stage}'}, status=status.HTTP_400_BAD_REQUEST)
    approve = request.data.get('approve', True)
    if isinstance(approve, str):
        approve = approve.lower() in ('true', '1', 'yes')
    try:
        inspection = review_inspection(
            job, stage, bool(approve), user=request.user,
            review_notes=request.data.get('notes', ''), request=request,
        )
    except BusinessRuleError as e:
        return _error(e)
    job.refresh_from_db()
    return Response({'inspection': InspectionSerializer(inspection).data, 'job': JobListSerializer(job).data})


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('inspections')])
def inspection_statistics(request):
    rows = Inspection.objects.values_list('stage', 'status').annotate(count=Count('id'))
    by_stage = {code: {s: 0 for s, _ in Inspection.STATUS_CHOICES} for code, _ in Inspection.STAGE_CHOICES}
    for stage, inspection_status, count in rows:
        by_stage[stage][inspection_status] = count
    return Response({
        'total': sum(sum(values.values()) for values in by_stage.values()),
        'pending_review': sum(values['PENDING'] for values in by_stage.values()),
        'by_stage': by_stage,
        'issues_found': Inspection.objects.filter(results__check_status='ISSUE_FOUND').distinct().count(),
    })


# Technician self-service
def _my_job(request, pk):
    technician = _technician_for(request)
    if technician is None:
        return None, Response({'error': 'No technician profile for this user'}, status=status.HTTP_403_FORBIDDEN)
    job = get_object_or_404(_job_queryset(), pk=pk, technicians=technician)
    return (job, technician), None


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('technician_jobs')])
def my_jobs(request):
    technician = _technician_for(request)
    if technician is None:
        return Response({'error': 'No technician profile for this user'}, status=status.HTTP_403_FORBIDDEN)
    queryset = JobFilter(request.query_params, queryset=_job_queryset().filter(technicians=technician)).qs
    return paginate(request, queryset, JobListSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('technician_jobs')])
def my_active_job(request):
    """The job the technician is working on now, or the next one to start"""
    technician = _technician_for(request)
    if technician is None:
        return Response({'error': 'No technician profile for this user'}, status=status.HTTP_403_FORBIDDEN)
    jobs = _job_queryset().filter(technicians=technician, status__in=ACTIVE_STATUSES)
    job = jobs.filter(status='IN_PROGRESS').first() or jobs.order_by('scheduled_date', 'created_at').first()
    return Response({'job': JobSerializer(job).data if job else None})


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('technician_jobs')])
def my_statistics(request):
    technician = _technician_for(request)
    if technician is None:
        return Response({'error': 'No technician profile for this user'}, status=status.HTTP_403_FORBIDDEN)
    jobs = Job.objects.filter(technicians=technician)
    today = timezone.localdate()
    return Response({
        'total_jobs': jobs.count(),
        'active_jobs': jobs.filter(status__in=ACTIVE_STATUSES).count(),
        'completed_jobs': jobs.filter(status__in=['COMPLETED', 'VERIFIED']).count(),
        'completed_this_month': jobs.filter(
            status__in=['COMPLETED', 'VERIFIED'], end_time__year=today.year, end_time__month=today.month
        ).count(),
        'scheduled_today': jobs.filter(scheduled_date=today, status__in=ACTIVE_STATUSES).count(),
        'pending_requisitions': Requisition.objects.filter(technician=technician, status='PENDING').count(),
        'pending_advances': AdvanceRequest.objects.filter(technician=technician, status='PENDING').count(),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('technician_jobs.update')])
def my_job_start(request, pk):
    found, error = _my_job(request, pk)
    if error:
        return error
    job, technician = found
    try:
        with transaction.atomic():
            start_job(job, technician, user=request.user,
                      gps_coordinates=request.data.get('gps_coordinates', ''), request=request)
    except BusinessRuleError as e:
        return _error(e)
    return Response(JobSerializer(job).data)


@api_view(['POST', 'PATCH'])
@permission_classes([IsAuthenticated, action_permission('technician_jobs.update')])
def my_job_progress(request, pk):
    found, error = _my_job(request, pk)
    if error:
        return error
    job, technician = found
    try:
        record_progress(job, technician, request.data)
    except BusinessRuleError as e:
        return _error(e)
    return Response(JobSerializer(job).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('technician_jobs.update')])
def my_job_complete(request, pk):
    found, error = _my_job(request, pk)
    if error:
        return error
    job, technician = found
    try:
        complete_job(job, technician, request.data, user=request.user, request=request)
    except BusinessRuleError as e:
        return _error(e)

    notify_roles(
        ['MANAGER', 'FINANCE'],
        'Job completed',
        f"{job.job_number} was completed by {technician.name} and awaits verification",
        'SUCCESS',
        link=f"/jobs/{job.id}",
    )
    return Response(JobSerializer(job).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('technician_jobs.update')])
def my_job_add_vehicle(request, pk):
    """Attach a vehicle to the job: an existing one of the customer (vehicle id) or a new one"""
    found, error = _my_job(request, pk)
    if error:
        return error
    job, technician = found
    if job.status not in ACTIVE_STATUSES:
        return Response({'error': f'Vehicles cannot be added while the job is {job.status}'},
                        status=status.HTTP_400_BAD_REQUEST)

    vehicle_id = request.data.get('vehicle')
    if vehicle_id:
        vehicle = get_object_or_404(Vehicle, pk=vehicle_id)
        if vehicle.customer_id != job.customer_id:
            return Response({'error': 'Vehicle does not belong to this customer'}, status=status.HTTP_400_BAD_REQUEST)
    else:
        serializer = VehicleSerializer(data={**request.data, 'customer': job.customer_id})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        vehicle = serializer.save()
        create_audit_log(
            request=request,
            action='create',
            model_name='Vehicle',
            object_id=str(vehicle.id),
            object_name=vehicle.vehicle_reg,
            changes={'job': job.job_number},
        )

    job.vehicle = vehicle
    job.save(update_fields=['vehicle', 'updated_at'])
    return Response(JobSerializer(job).data)
