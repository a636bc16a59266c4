"""
Role based access control.

Permissions are "module.action" strings (e.g. "jobs.assign"). A role is
granted a list of such strings; "module.*" grants every action of a module
and "*" grants everything. Superusers and the ADMIN role pass every check.
"""
from rest_framework.permissions import BasePermission

ROLE_PERMISSIONS = {
    'ADMIN': ['*'],
    'MANAGER': [
        'users.read', 'settings.read',
        'customers.*', 'vehicles.*', 'technicians.*', 'jobs.*', 'requisitions.*',
        'advance_requests.*', 'inspections.*', 'inventory.*', 'devices.*',
        'invoices.*', 'quotations.*', 'payments.*', 'payment_methods.*',
        'transactions.read', 'processing_fees.read', 'subscriptions.*',
        'sms.*', 'reports.read', 'migration.*', 'audit_logs.read',
    ],
    'FINANCE': [
        'customers.read', 'vehicles.read', 'jobs.read', 'technicians.read',
        'inventory.read', 'devices.read',
        'invoices.*', 'quotations.*', 'payments.*', 'payment_methods.*',
        'transactions.*', 'processing_fees.*', 'subscriptions.*',
        'advance_requests.read', 'advance_requests.approve', 'advance_requests.disburse',
        'requisitions.read', 'sms.read', 'sms.send', 'reports.read',
    ],
    'SALES': [
        'customers.*', 'vehicles.*', 'jobs.read', 'jobs.create', 'technicians.read',
        'inventory.read', 'devices.read',
        'quotations.*', 'invoices.read', 'invoices.create', 'invoices.update', 'invoices.send',
        'payment_methods.read', 'subscriptions.read', 'sms.send', 'reports.read',
    ],
    'SUPPORT': [
        'customers.read', 'customers.update', 'vehicles.*', 'technicians.read',
        'jobs.read', 'jobs.create', 'jobs.update', 'jobs.assign',
        'inspections.read', 'devices.read', 'inventory.read',
        'subscriptions.read', 'sms.read', 'sms.send',
    ],
    'TECHNICIAN': [
        'technician_jobs.*', 'customers.read', 'vehicles.read', 'vehicles.create',
        'requisitions.read', 'requisitions.create',
        'advance_requests.read', 'advance_requests.create',
        'inspections.read', 'inspections.create',
        'inventory.read', 'devices.read',
    ],
}

METHOD_ACTIONS = {
    'GET': 'read',
    'HEAD': 'read',
    'OPTIONS': 'read',
    'POST': 'create',
    'PUT': 'update',
    'PATCH': 'update',
    'DELETE': 'delete',
}


def get_role_permissions(role):
    return ROLE_PERMISSIONS.get(role, [])


def has_permission(user, permission):
    """Check whether a user holds a "module.action" permission"""
    if not user or not user.is_authenticated or not user.is_active:
        return False
    if user.is_superuser:
        return True
    granted = get_role_permissions(getattr(user, 'role', None))
    if '*' in granted or permission in granted:
        return True
    module = permission.split('.', 1)[0]
    return f'{module}.*' in granted


def module_permission(module):
    """DRF permission class mapping the HTTP method onto read/create/update/delete of a module"""
    class ModulePermission(BasePermission):
        message = f'You do not have permission to access {module}.'

        def has_permission(self, request, view):
            action = METHOD_ACTIONS.get(request.method, 'read')
            return has_permission(request.user, f'{module}.{action}')

    ModulePermission.__name__ = f'{module.title().replace("_", "")}Permission'
    return ModulePermission


def action_permission(permission):
    """DRF permission class requiring one specific permission regardless of method"""
    class ActionPermission(BasePermission):
        message = f'You do not have the "{permission}" permission.'

        def has_permission(self, request, view):
            return has_permission(request.user, permission)

    ActionPermission.__name__ = f'{permission.replace(".", "_").title().replace("_", "")}Permission'
    return ActionPermission


class IsAdminRole(BasePermission):
    """Superusers, staff and users with the ADMIN role"""

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and (user.is_superuser or user.is_staff or user.role == 'ADMIN'))
