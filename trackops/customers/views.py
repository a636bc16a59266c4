import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q, Sum, Count, F, DecimalField, ExpressionWrapper
from django.db.models.deletion import ProtectedError
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date

from trackops.core.permissions import module_permission, action_permission
from trackops.core.utils import create_audit_log, paginate, parse_int
from trackops.billing.models import Invoice
from trackops.billing.serializers import TransactionSerializer, InvoiceListSerializer
from trackops.billing.services import customer_statement, customer_balance
from trackops.jobs.serializers import JobListSerializer
from trackops.subscriptions.serializers import SubscriptionSerializer
from .filters import CustomerFilter, VehicleFilter
from .models import Customer, Vehicle
from .serializers import CustomerSerializer, CustomerListSerializer, VehicleSerializer

logger = logging.getLogger(__name__)

UNPAID_STATUSES = ['SENT', 'PARTIAL', 'OVERDUE']

OUTSTANDING_EXPRESSION = ExpressionWrapper(F('total') - F('amount_paid'), output_field=DecimalField(max_digits=12, decimal_places=2))


# Customer views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('customers')])
def customer_list_create(request):
    """List customers (search, type, city, active) or create a new customer"""
    if request.method == 'GET':
        queryset = Customer.objects.annotate(vehicle_count=Count('vehicles')).order_by('-created_at')
        queryset = CustomerFilter(request.query_params, queryset=queryset).qs
        return paginate(request, queryset, CustomerSerializer)

    serializer = CustomerSerializer(data=request.data)
    if serializer.is_valid():
        customer = serializer.save(created_by=request.user)
        create_audit_log(
            request=request,
            action='create',
            model_name='Customer',
            object_id=str(customer.id),
            object_name=customer.display_name,
            object_reference=customer.customer_code,
        )
        return Response(CustomerSerializer(customer).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('customers')])
def customer_detail(request, pk):
    """Retrieve, update or delete a customer"""
    customer = get_object_or_404(Customer, pk=pk)

    if request.method == 'GET':
        return Response(CustomerSerializer(customer).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = CustomerSerializer(customer, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(
                request=request,
                action='update',
                model_name='Customer',
                object_id=str(customer.id),
                object_name=customer.display_name,
                changes={key: str(value) for key, value in serializer.validated_data.items()},
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if customer.invoices.exists() or customer.jobs.exists():
            return Response(
                {'error': 'Customer has invoices or jobs and cannot be deleted. Deactivate the customer instead.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        name = customer.display_name
        try:
            customer.delete()
        except ProtectedError:
            return Response(
                {'error': 'Customer has related records and cannot be deleted. Deactivate the customer instead.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        create_audit_log(request=request, action='delete', model_name='Customer', object_id=str(pk), object_name=name)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('customers.update')])
def customer_toggle_status(request, pk):
    customer = get_object_or_404(Customer, pk=pk)
    customer.is_active = not customer.is_active
    customer.save(update_fields=['is_active', 'updated_at'])
    create_audit_log(
        request=request,
        action='status_change',
        model_name='Customer',
        object_id=str(customer.id),
        object_name=customer.display_name,
        changes={'is_active': customer.is_active}
    )
    return Response(CustomerSerializer(customer).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('customers')])
def customer_search(request):
    """Quick lookup by id, code, name or phone (max 10 results)"""
    query = (request.query_params.get('q') or request.query_params.get('search') or '').strip()
    if not query:
        return Response([])
    conditions = (
        Q(customer_code__icontains=query) |
        Q(business_name__icontains=query) |
        Q(contact_person__icontains=query) |
        Q(phone__icontains=query)
    )
    if query.isdigit():
        conditions |= Q(pk=int(query))
    queryset = Customer.objects.filter(conditions, is_active=True).order_by('business_name', 'contact_person')[:10]
    return Response(CustomerListSerializer(queryset, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, action_permission('transactions.read')])
def customer_statement_view(request, pk):
    """Ledger lines with running balance, optionally limited to a date range"""
    customer = get_object_or_404(Customer, pk=pk)
    start_date = parse_date(request.query_params.get('start_date') or '')
    end_date = parse_date(request.query_params.get('end_date') or '')
    if start_date and end_date and start_date > end_date:
        return Response({'error': 'start_date must be on or before end_date'}, status=status.HTTP_400_BAD_REQUEST)

    statement = customer_statement(customer, start_date=start_date, end_date=end_date)
    return Response({
        'customer': CustomerListSerializer(customer).data,
        'start_date': start_date,
        'end_date': end_date,
        'opening_balance': statement['opening_balance'],
        'total_debit': statement['total_debit'],
        'total_credit': statement['total_credit'],
        'closing_balance': statement['closing_balance'],
        'transactions': TransactionSerializer(statement['transactions'], many=True).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, action_permission('invoices.read')])
def customer_outstanding_balance(request):
    """Customers with unpaid standard invoices and how much they owe"""
    invoices = Invoice.objects.filter(invoice_type='STANDARD', status__in=UNPAID_STATUSES)
    rows = (
        invoices.values('customer_id', 'customer__customer_code', 'customer__business_name',
                        'customer__contact_person', 'customer__phone')
        .annotate(
            invoice_count=Count('id'),
            total_invoiced=Sum('total'),
            total_paid=Sum('amount_paid'),
            outstanding=Sum(OUTSTANDING_EXPRESSION),
        )
        .order_by('-outstanding')
    )
    customers = [
        {
            'customer_id': row['customer_id'],
            'customer_code': row['customer__customer_code'],
            'customer_name': row['customer__business_name'] or row['customer__contact_person'] or row['customer__customer_code'],
            'phone': row['customer__phone'],
            'invoice_count': row['invoice_count'],
            'total_invoiced': row['total_invoiced'],
            'total_paid': row['total_paid'],
            'outstanding': row['outstanding'],
        }
        for row in rows
    ]
    totals = invoices.aggregate(outstanding=Sum(OUTSTANDING_EXPRESSION))
    return Response({
        'customers': customers,
        'customer_count': len(customers),
        'total_outstanding': totals['outstanding'] or 0,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('customers')])
def top_customers(request):
    """Customers ranked by the total they have paid"""
    limit = min(max(parse_int(request.query_params.get('limit'), 10), 1), 100)
    queryset = (
        Customer.objects.annotate(total_paid=Sum('receipts__amount'), payment_count=Count('receipts'))
        .filter(total_paid__gt=0)
        .order_by('-total_paid')[:limit]
    )
    return Response([
        {
            'id': customer.id,
            'customer_code': customer.customer_code,
            'display_name': customer.display_name,
            'phone': customer.phone,
            'total_paid': customer.total_paid,
            'payment_count': customer.payment_count,
        }
        for customer in queryset
    ])


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('customers')])
def customer_full_detail(request, pk):
    """Customer with vehicles, recent jobs, invoices, subscriptions and ledger balance"""
    customer = get_object_or_404(Customer, pk=pk)
    vehicles = customer.vehicles.all().order_by('vehicle_reg')
    jobs = customer.jobs.select_related('vehicle', 'lead_technician__user').order_by('-created_at')[:10]
    invoices = customer.invoices.order_by('-issue_date', '-id')[:10]
    subscriptions = customer.subscriptions.select_related('product', 'vehicle').order_by('expiry_date')
    outstanding = customer.invoices.filter(invoice_type='STANDARD', status__in=UNPAID_STATUSES).aggregate(
        outstanding=Sum(OUTSTANDING_EXPRESSION)
    )['outstanding'] or 0
    return Response({
        'customer': CustomerSerializer(customer).data,
        'vehicles': VehicleSerializer(vehicles, many=True).data,
        'recent_jobs': JobListSerializer(jobs, many=True).data,
        'recent_invoices': InvoiceListSerializer(invoices, many=True).data,
        'subscriptions': SubscriptionSerializer(subscriptions, many=True).data,
        'balance': customer_balance(customer),
        'outstanding': outstanding,
    })


# Vehicle views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, module_permission('vehicles')])
def vehicle_list_create(request):
    if request.method == 'GET':
        queryset = Vehicle.objects.select_related('customer').order_by('vehicle_reg')
        queryset = VehicleFilter(request.query_params, queryset=queryset).qs
        return paginate(request, queryset, VehicleSerializer)

    serializer = VehicleSerializer(data=request.data)
    if serializer.is_valid():
        vehicle = serializer.save()
        create_audit_log(
            request=request,
            action='create',
            model_name='Vehicle',
            object_id=str(vehicle.id),
            object_name=vehicle.vehicle_reg,
            changes={'customer': vehicle.customer.customer_code},
        )
        return Response(VehicleSerializer(vehicle).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, module_permission('vehicles')])
def vehicle_detail(request, pk):
    """Retrieve, update or delete a vehicle"""
    vehicle = get_object_or_404(Vehicle, pk=pk)

    if request.method == 'GET':
        return Response(VehicleSerializer(vehicle).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = VehicleSerializer(vehicle, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if vehicle.jobs.exists() or vehicle.devices.filter(status='ACTIVE').exists():
            return Response(
                {'error': 'Vehicle has jobs or an active device and cannot be deleted'},
                status=status.HTTP_400_BAD_REQUEST
            )
        reg = vehicle.vehicle_reg
        vehicle.delete()
        create_audit_log(request=request, action='delete', model_name='Vehicle', object_id=str(pk), object_name=reg)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('vehicles')])
def customer_vehicles(request, customer_id):
    customer = get_object_or_404(Customer, pk=customer_id)
    vehicles = customer.vehicles.all().order_by('vehicle_reg')
    return Response(VehicleSerializer(vehicles, many=True).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, action_permission('vehicles.update')])
def vehicle_toggle_status(request, pk):
    vehicle = get_object_or_404(Vehicle, pk=pk)
    vehicle.is_active = not vehicle.is_active
    vehicle.save(update_fields=['is_active', 'updated_at'])
    create_audit_log(
        request=request,
        action='status_change',
        model_name='Vehicle',
        object_id=str(vehicle.id),
        object_name=vehicle.vehicle_reg,
        changes={'is_active': vehicle.is_active}
    )
    return Response(VehicleSerializer(vehicle).data)


def tracked_vehicles(queryset=None):
    """Vehicles with an ACTIVE device installed through a completed or verified job"""
    queryset = queryset if queryset is not None else Vehicle.objects.all()
    return queryset.filter(
        jobs__status__in=['COMPLETED', 'VERIFIED'],
        jobs__devices__status='ACTIVE',
    ).distinct()


@api_view(['GET'])
@permission_classes([IsAuthenticated, module_permission('vehicles')])
def vehicle_statistics(request):
    total = Vehicle.objects.count()
    active = Vehicle.objects.filter(is_active=True).count()
    with_tracker = tracked_vehicles(Vehicle.objects.filter(is_active=True)).count()
    return Response({
        'total': total,
        'active': active,
        'inactive': total - active,
        'with_tracker': with_tracker,
        'pending_setup': active - with_tracker,
    })
