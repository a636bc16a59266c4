import logging
import secrets

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q, Count
from django.db.models.deletion import ProtectedError
from django.shortcuts import get_object_or_404

from trackops.core.permissions import module_permission, action_permission
from trackops.core.utils import create_audit_log, paginate
from trackops.jobs.workflow import OPEN_STATUSES
from .models import Technician
from .serializers import TechnicianSerializer, TechnicianCreateSerializer

logger = logging.getLogger(__name__)

User = get_user_model()


def with_job_counts(queryset):
    return queryset.annotate(
        active_jobs=Count('jobs', filter=Q(jobs__status__in=OPEN_STATUSES), distinct=True),
        completed_jobs=Count('jobs', filter=Q(jobs__status__in=['COMPLETED', 'VERIFIED']), distinct=True),
    )


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('technicians')])
def technician_list_create(request):
    """List technicians or create a technician together with its user account"""
    if request.method == 'GET':
        queryset = with_job_counts(Technician.objects.select_related('user')).order_by('technician_code')
        search = request.query_params.get('search', None)
        location = request.query_params.get('location', None)
        is_available = request.query_params.get('is_available', None)
        if search:
            queryset = queryset.filter(
                Q(technician_code__icontains=search) |
                Q(user__first_name__icontains=search) |
                Q(user__last_name__icontains=search) |
                Q(user__username__icontains=search) |
                Q(user__phone__icontains=search)
            )
        if location:
            queryset = queryset.filter(location__icontains=location)
        if is_available is not None:
            queryset = queryset.filter(is_available=is_available.lower() == 'true')
        return paginate(request, queryset, TechnicianSerializer)

    serializer = TechnicianCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    temporary_password = secrets.token_urlsafe(9)
    with transaction.atomic():
        user = User.objects.create_user(
            username=data['username'],
            password=temporary_password,
            first_name=data['first_name'],
            last_name=data.get('last_name', ''),
            email=data.get('email', ''),
            phone=data['phone'],
            role='TECHNICIAN',
        )
        technician = Technician.objects.create(
            user=user,
            specialization=data.get('specialization', []),
            location=data.get('location', ''),
            id_number=data.get('id_number', ''),
            notes=data.get('notes', ''),
        )
    create_audit_log(
        request=request,
        action='create',
        model_name='Technician',
        object_id=str(technician.id),
        object_name=technician.name,
        object_reference=technician.technician_code,
    )
    logger.info(f"Technician {technician.technician_code} created by {request.user.username}")
    response = TechnicianSerializer(technician).data
    # Only returned here; the technician changes it on first login
    response['temporary_password'] = temporary_password
    return Response(response, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('technicians')])
def technician_detail(request, pk):
    """Retrieve, update or delete a technician"""
    technician = get_object_or_404(Technician.objects.select_related('user'), pk=pk)

    if request.method == 'GET':
        return Response(TechnicianSerializer(technician).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = TechnicianSerializer(technician, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if technician.jobs.filter(status__in=OPEN_STATUSES).exists():
            return Response(
                {'error': 'Technician has open jobs. Reassign or finish them first.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        name = technician.name
        user = technician.user
        try:
            with transaction.atomic():
                technician.delete()
                # Keep the account for history, but it can no longer sign in
                user.is_active = False
                user.save(update_fields=['is_active', 'updated_at'])
        except ProtectedError:
            return Response(
                {'error': 'Technician has requisitions or advances on record and cannot be deleted'},
                status=status.HTTP_400_BAD_REQUEST
            )
        create_audit_log(request=request, action='delete', model_name='Technician', object_id=str(pk), object_name=name)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('technicians.update')])
def technician_toggle_availability(request, pk):
    technician = get_object_or_404(Technician, pk=pk)
    technician.is_available = not technician.is_available
    technician.save(update_fields=['is_available', 'updated_at'])
    create_audit_log(
        request=request,
        action='status_change',
        model_name='Technician',
        object_id=str(technician.id),
        object_name=technician.name,
        changes={'is_available': technician.is_available}
    )
    return Response(TechnicianSerializer(technician).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('technicians')])
def nearest_available(request):
    """
    Available technicians for a location.
    Technicians sharing the requested specialization come first, then those
    with the fewest open jobs.
    """
    location = (request.query_params.get('location') or '').strip()
    specialization = (request.query_params.get('specialization') or '').strip()

    queryset = with_job_counts(
        Technician.objects.select_related('user').filter(is_available=True, user__is_active=True)
    )
    if location:
        queryset = queryset.filter(location__icontains=location)

    technicians = list(queryset)
    wanted = specialization.lower()

    def sort_key(technician):
        skills = [skill.lower() for skill in technician.specialization or []]
        matches = bool(wanted) and wanted in skills
        return (0 if matches else 1, technician.active_jobs, technician.technician_code)

    technicians.sort(key=sort_key)
    return Response(TechnicianSerializer(technicians, many=True).data)
