import logging
import secrets

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework_simplejwt.views import TokenObtainPairView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.exceptions import AuthenticationFailed
from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from django.db.models import Q
from .models import Setting, AuditLog
from .permissions import IsAdminRole, action_permission, has_permission
from .serializers import (
    UserSerializer, UserCreateSerializer, CurrentUserSerializer, PasswordChangeSerializer,
    SettingSerializer, AuditLogSerializer
)
from .utils import create_audit_log, paginate

logger = logging.getLogger(__name__)

User = get_user_model()

AUDIT_LOG_FILTERS = {
    'action': 'action',
    'model': 'model_name',
    'reference': 'object_reference',
    'date_from': 'created_at__date__gte',
    'date_to': 'created_at__date__lte',
}


class LoginSerializer(TokenObtainPairSerializer):
    """Token pair plus the user's role and resolved permissions"""
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        data['user'] = CurrentUserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['role'] = user.role
        return token


class LoginView(TokenObtainPairView):
    serializer_class = LoginSerializer


def _audit_user(request, user, action, changes):
    create_audit_log(request=request, action=action, model_name='User',
                     object_id=str(user.id), object_name=user.username, changes=changes)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    return Response(CurrentUserSerializer(request.user).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password(request):
    serializer = PasswordChangeSerializer(data=request.data, context={'request': request})
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    request.user.set_password(serializer.validated_data['new_password'])
    request.user.save()
    _audit_user(request, request.user, 'update', {'password': 'changed'})
    return Response({'message': 'Password changed successfully'})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_list_create(request):
    """Staff accounts, searchable by name, username or e-mail"""
    if request.method == 'GET':
        queryset = User.objects.order_by('username')
        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(username__icontains=search) | Q(first_name__icontains=search) |
                Q(last_name__icontains=search) | Q(email__icontains=search)
            )
        if request.query_params.get('role'):
            queryset = queryset.filter(role=request.query_params['role'])
        if request.query_params.get('is_active') is not None:
            queryset = queryset.filter(is_active=request.query_params['is_active'].lower() == 'true')
        return paginate(request, queryset, UserSerializer)

    serializer = UserCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    user = serializer.save()
    _audit_user(request, user, 'create', {'role': user.role})
    return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_detail(request, pk):
    user = get_object_or_404(User, pk=pk)
    if request.method == 'GET':
        return Response(UserSerializer(user).data)
    if request.method == 'DELETE':
        if user == request.user:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        _audit_user(request, user, 'delete', {'role': user.role})
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = UserSerializer(user, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    serializer.save()
    _audit_user(request, user, 'update', {key: str(value) for key, value in serializer.validated_data.items()})
    return Response(serializer.data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_toggle_status(request, pk):
    user = get_object_or_404(User, pk=pk)
    if user == request.user:
        return Response({'error': 'You cannot deactivate your own account'}, status=status.HTTP_400_BAD_REQUEST)
    user.is_active = not user.is_active
    user.save(update_fields=['is_active', 'updated_at'])
    _audit_user(request, user, 'status_change', {'is_active': user.is_active})
    return Response(UserSerializer(user).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_reset_password(request, pk):
    """Reset a user's password to a generated temporary password"""
    user = get_object_or_404(User, pk=pk)
    temporary_password = request.data.get('password') or secrets.token_urlsafe(9)
    user.set_password(temporary_password)
    user.save()
    # The password itself never goes into the log
    _audit_user(request, user, 'update', {'password': 'reset'})
    logger.info(f"Password reset for user {user.username} by {request.user.username}")
    return Response({'message': 'Password reset successfully', 'temporary_password': temporary_password})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, action_permission('settings.read')])
def setting_list_create(request):
    if request.method == 'GET':
        return Response(SettingSerializer(Setting.objects.order_by('key'), many=True).data)
    if not IsAdminRole().has_permission(request, None):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    serializer = SettingSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    setting = serializer.save()
    create_audit_log(request=request, action='create', model_name='Setting',
                     object_id=str(setting.id), object_name=setting.key, changes={'value': setting.value})
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def setting_values(request):
    """All settings as a key -> value map"""
    return Response(dict(Setting.objects.values_list('key', 'value')))


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def setting_detail(request, pk):
    setting = get_object_or_404(Setting, pk=pk)
    if request.method == 'GET':
        return Response(SettingSerializer(setting).data)
    if request.method == 'DELETE':
        create_audit_log(request=request, action='delete', model_name='Setting',
                         object_id=str(setting.id), object_name=setting.key)
        setting.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = SettingSerializer(setting, data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    serializer.save()
    create_audit_log(request=request, action='update', model_name='Setting',
                     object_id=str(setting.id), object_name=setting.key, changes={'value': setting.value})
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """
    Audit trail, newest first. Filters: action, model, reference, date_from,
    date_to. Users without audit access only see their own entries.
    """
    queryset = AuditLog.objects.select_related('user')
    if not has_permission(request.user, 'audit_logs.read'):
        queryset = queryset.filter(user=request.user)
    for param, lookup in AUDIT_LOG_FILTERS.items():
        value = request.query_params.get(param)
        if value:
            queryset = queryset.filter(**{lookup: value})
    return paginate(request, queryset.order_by('-created_at'), AuditLogSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    audit_log = get_object_or_404(AuditLog, pk=pk)
    if not has_permission(request.user, 'audit_logs.read') and audit_log.user != request.user:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    return Response(AuditLogSerializer(audit_log).data)
