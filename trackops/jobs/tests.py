"""
Test suite for jobs, requisitions, advance requests and inspections
"""
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from trackops.core.exceptions import WorkflowError
from trackops.core.models import AuditLog
from trackops.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from trackops.jobs.models import Job, JobStatusHistory, Requisition, ChecklistItem, Inspection
from trackops.jobs.workflow import transition_job, assign_job, cancel_job, can_transition, OPEN_STATUSES
from trackops.notifications.models import Notification


class WorkflowTests(TestCase):
    """Test the job state machine"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='MANAGER')

    def test_allowed_transitions(self):
        self.assertTrue(can_transition('PENDING', 'ASSIGNED'))
        self.assertTrue(can_transition('IN_PROGRESS', 'COMPLETED'))
        self.assertFalse(can_transition('PENDING', 'COMPLETED'))
        self.assertFalse(can_transition('VERIFIED', 'CANCELLED'))
        self.assertNotIn('COMPLETED', OPEN_STATUSES)

    def test_transition_writes_history_and_audit(self):
        """Every status change leaves a history row and an audit entry"""
        job = TestDataFactory.create_job()
        technician = TestDataFactory.create_technician()
        assign_job(job, [technician], user=self.user)
        job.refresh_from_db()
        self.assertEqual(job.status, 'ASSIGNED')
        self.assertEqual(job.lead_technician, technician)
        history = JobStatusHistory.objects.get(job=job)
        self.assertEqual((history.from_status, history.to_status), ('PENDING', 'ASSIGNED'))
        self.assertTrue(AuditLog.objects.filter(model_name='Job', action='status_change').exists())

    def test_illegal_transition(self):
        job = TestDataFactory.create_job()
        with self.assertRaises(WorkflowError):
            transition_job(job, 'IN_PROGRESS')
        job.refresh_from_db()
        self.assertEqual(job.status, 'PENDING')
        self.assertFalse(JobStatusHistory.objects.exists())

    def test_assign_unavailable_technician(self):
        job = TestDataFactory.create_job()
        with self.assertRaises(WorkflowError):
            assign_job(job, [TestDataFactory.create_technician(is_available=False)])

    def test_cancel_requires_reason(self):
        job = TestDataFactory.create_job()
        with self.assertRaises(WorkflowError):
            cancel_job(job, '')
        cancel_job(job, 'Customer withdrew', user=self.user)
        self.assertEqual(job.status, 'CANCELLED')
        self.assertEqual(job.cancellation_reason, 'Customer withdrew')


class JobAPITests(TestCase):
    """Test job endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='MANAGER')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()
        self.vehicle = TestDataFactory.create_vehicle(customer=self.customer)

    def test_create_job(self):
        """New jobs start PENDING with a generated number"""
        product = TestDataFactory.create_product()
        response = self.client.post('/api/v1/jobs/', {
            'customer': self.customer.id,
            'vehicle': self.vehicle.id,
            'job_type': 'NEW_INSTALLATION',
            'products': [product.id],
            'scheduled_date': str(timezone.localdate() + timedelta(days=1)),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'PENDING')
        self.assertTrue(response.data['job_number'].startswith('JOB'))
        self.assertEqual(response.data['allowed_transitions'], ['ASSIGNED', 'CANCELLED'])

    def test_create_job_vehicle_of_other_customer(self):
        response = self.client.post('/api/v1/jobs/', {
            'customer': self.customer.id, 'vehicle': TestDataFactory.create_vehicle().id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('vehicle', response.data)

    def test_status_not_writable(self):
        """Status only changes through workflow actions"""
        job = TestDataFactory.create_job(customer=self.customer, vehicle=self.vehicle)
        response = self.client.patch(f'/api/v1/jobs/{job.id}/', {'status': 'VERIFIED', 'service_description': 'Fit'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'PENDING')

    def test_completed_job_not_editable(self):
        job = TestDataFactory.create_job(status='COMPLETED')
        response = self.client.patch(f'/api/v1/jobs/{job.id}/', {'service_description': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_assign_notifies_technicians(self):
        job = TestDataFactory.create_job(customer=self.customer, vehicle=self.vehicle)
        lead = TestDataFactory.create_technician()
        helper = TestDataFactory.create_technician()
        response = self.client.post(f'/api/v1/jobs/{job.id}/assign/', {'technicians': [lead.id, helper.id]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'ASSIGNED')
        self.assertEqual(response.data['lead_technician'], lead.id)
        self.assertEqual(Notification.objects.filter(title='New job assigned').count(), 2)

    def test_assign_twice_refused(self):
        job = TestDataFactory.create_job(status='ASSIGNED')
        response = self.client.post(f'/api/v1/jobs/{job.id}/assign/', {
            'technicians': [TestDataFactory.create_technician().id]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reassign_lead(self):
        job = TestDataFactory.create_job()
        assign_job(job, [TestDataFactory.create_technician()], user=self.user)
        new_lead = TestDataFactory.create_technician()
        response = self.client.post(f'/api/v1/jobs/{job.id}/reassign/{new_lead.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['lead_technician'], new_lead.id)

    def test_cancel(self):
        job = TestDataFactory.create_job()
        response = self.client.post(f'/api/v1/jobs/{job.id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(f'/api/v1/jobs/{job.id}/cancel/', {'reason': 'Duplicate'}, format='json')
        self.assertEqual(response.data['status'], 'CANCELLED')

    def test_verify_only_completed(self):
        """Only completed jobs can be verified"""
        job = TestDataFactory.create_job(status='IN_PROGRESS')
        response = self.client.post(f'/api/v1/jobs/{job.id}/verify/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        job = TestDataFactory.create_job(status='COMPLETED')
        response = self.client.post(f'/api/v1/jobs/{job.id}/verify/', {'payment_verified': 'true'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'VERIFIED')
        self.assertTrue(response.data['payment_verified'])

    def test_delete_rules(self):
        """Only pending or cancelled jobs can be deleted"""
        job = TestDataFactory.create_job(status='ASSIGNED')
        self.assertEqual(self.client.delete(f'/api/v1/jobs/{job.id}/').status_code, status.HTTP_400_BAD_REQUEST)
        job = TestDataFactory.create_job()
        self.assertEqual(self.client.delete(f'/api/v1/jobs/{job.id}/').status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Job.objects.filter(pk=job.id).exists())

    def test_statistics(self):
        TestDataFactory.create_job()
        TestDataFactory.create_job(status='IN_PROGRESS')
        TestDataFactory.create_job(status='VERIFIED')
        response = self.client.get('/api/v1/jobs/statistics/')
        self.assertEqual(response.data['total_jobs'], 3)
        self.assertEqual(response.data['open_jobs'], 2)
        self.assertEqual(response.data['unassigned'], 1)
        self.assertEqual(response.data['by_status']['VERIFIED'], 1)

    def test_filter_by_status(self):
        TestDataFactory.create_job()
        TestDataFactory.create_job(status='CANCELLED')
        response = self.client.get('/api/v1/jobs/?status=CANCELLED')
        self.assertEqual(response.data['count'], 1)

    def test_workflow_timeline(self):
        job = TestDataFactory.create_job()
        assign_job(job, [TestDataFactory.create_technician()], user=self.user)
        response = self.client.get(f'/api/v1/jobs/{job.id}/workflow/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['history']), 1)
        self.assertIsNone(response.data['invoice'])

    def test_sales_cannot_assign(self):
        job = TestDataFactory.create_job()
        self.client.authenticate_user(TestDataFactory.create_user(role='SALES'))
        response = self.client.post(f'/api/v1/jobs/{job.id}/assign/', {
            'technicians': [TestDataFactory.create_technician().id]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class RequisitionTests(TestCase):
    """Test requisition approval and stock issue"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(role='MANAGER')
        self.technician = TestDataFactory.create_technician()
        self.job = TestDataFactory.create_job()
        assign_job(self.job, [self.technician], user=self.manager)
        self.product = TestDataFactory.create_product()
        self.client = AuthenticatedAPIClient()

    def _raise(self, quantity=5, product=None):
        self.client.authenticate_user(self.technician.user)
        return self.client.post('/api/v1/requisitions/', {
            'job': self.job.id,
            'items': [{'product': (product or self.product).id, 'quantity_requested': quantity}],
        }, format='json')

    def test_technician_raises_requisition(self):
        """Raising a requisition moves the job to REQUISITION_PENDING and alerts managers"""
        response = self._raise()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['technician'], self.technician.id)
        self.job.refresh_from_db()
        self.assertEqual(self.job.status, 'REQUISITION_PENDING')
        self.assertTrue(Notification.objects.filter(user=self.manager, title='Requisition awaiting approval').exists())

    def test_technician_not_on_job(self):
        outsider = TestDataFactory.create_technician()
        self.client.authenticate_user(outsider.user)
        response = self.client.post('/api/v1/requisitions/', {
            'job': self.job.id, 'items': [{'product': self.product.id, 'quantity_requested': 1}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_technicians_see_only_their_requisitions(self):
        self._raise()
        other_job = TestDataFactory.create_job()
        other = TestDataFactory.create_technician()
        assign_job(other_job, [other])
        Requisition.objects.create(job=other_job, technician=other)
        response = self.client.get('/api/v1/requisitions/')
        self.assertEqual(response.data['count'], 1)

    def test_approve_and_issue_fifo(self):
        """Issue without a batch drains the oldest batch first"""
        today = timezone.localdate()
        old = TestDataFactory.create_batch(product=self.product, quantity=3, received_date=today - timedelta(days=30))
        new = TestDataFactory.create_batch(product=self.product, quantity=10, received_date=today)
        requisition_id = self._raise(quantity=5).data['id']

        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/requisitions/{requisition_id}/approve/')
        self.assertEqual(response.data['status'], 'APPROVED')
        self.job.refresh_from_db()
        self.assertEqual(self.job.status, 'REQUISITION_APPROVED')

        item_id = response.data['items'][0]['id']
        response = self.client.post(f'/api/v1/requisitions/{requisition_id}/issue/', {
            'items': [{'item': item_id, 'quantity': 5}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'FULLY_ISSUED')
        old.refresh_from_db()
        new.refresh_from_db()
        self.assertEqual(old.quantity_available, 0)
        self.assertEqual(new.quantity_available, 8)

    def test_issue_more_than_outstanding(self):
        TestDataFactory.create_batch(product=self.product, quantity=10)
        requisition_id = self._raise(quantity=2).data['id']
        self.client.authenticate_user(self.manager)
        item_id = self.client.post(f'/api/v1/requisitions/{requisition_id}/approve/').data['items'][0]['id']
        response = self.client.post(f'/api/v1/requisitions/{requisition_id}/issue/', {
            'items': [{'item': item_id, 'quantity': 3}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_issue_rejects_repeated_item_lines(self):
        """Two lines for the same item cannot together exceed what is outstanding"""
        batch = TestDataFactory.create_batch(product=self.product, quantity=10)
        requisition_id = self._raise(quantity=5).data['id']
        self.client.authenticate_user(self.manager)
        item_id = self.client.post(f'/api/v1/requisitions/{requisition_id}/approve/').data['items'][0]['id']
        response = self.client.post(f'/api/v1/requisitions/{requisition_id}/issue/', {
            'items': [{'item': item_id, 'quantity': 5}, {'item': item_id, 'quantity': 5}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        batch.refresh_from_db()
        self.assertEqual(batch.quantity_available, 10)
        item = Requisition.objects.get(pk=requisition_id).items.get()
        self.assertEqual(item.quantity_issued, 0)

    def test_issue_serialized_needs_imeis(self):
        """Serialized products are issued by IMEI and the devices become ISSUED"""
        product = TestDataFactory.create_product(is_serialized=True)
        batch = TestDataFactory.create_batch(product=product, quantity=1)
        device = TestDataFactory.create_device(product=product, batch=batch)
        requisition_id = self._raise(quantity=1, product=product).data['id']
        self.client.authenticate_user(self.manager)
        item_id = self.client.post(f'/api/v1/requisitions/{requisition_id}/approve/').data['items'][0]['id']

        response = self.client.post(f'/api/v1/requisitions/{requisition_id}/issue/', {
            'items': [{'item': item_id, 'quantity': 1}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'/api/v1/requisitions/{requisition_id}/issue/', {
            'items': [{'item': item_id, 'quantity': 1, 'imeis': [device.imei]}]
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        device.refresh_from_db()
        self.assertEqual(device.status, 'ISSUED')
        self.assertIn(device, self.job.devices.all())

    def test_reject_returns_job_to_assigned(self):
        requisition_id = self._raise().data['id']
        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/requisitions/{requisition_id}/reject/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(f'/api/v1/requisitions/{requisition_id}/reject/', {'reason': 'Use stock on van'}, format='json')
        self.assertEqual(response.data['status'], 'REJECTED')
        self.job.refresh_from_db()
        self.assertEqual(self.job.status, 'ASSIGNED')

    def test_technician_cannot_approve(self):
        requisition_id = self._raise().data['id']
        response = self.client.post(f'/api/v1/requisitions/{requisition_id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class AdvanceRequestTests(TestCase):
    """Test advance request approval and disbursement"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(role='MANAGER')
        self.finance = TestDataFactory.create_user(role='FINANCE')
        self.technician = TestDataFactory.create_technician()
        self.job = TestDataFactory.create_job()
        assign_job(self.job, [self.technician], user=self.manager)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.technician.user)

    def _create(self, amount='1500.00'):
        return self.client.post('/api/v1/advance-requests/', {
            'job': self.job.id, 'advance_type': 'TRANSPORT', 'amount': amount, 'description': 'Fare to Thika',
        }, format='json')

    def test_create_notifies_approvers(self):
        response = self._create()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'PENDING')
        self.assertTrue(Notification.objects.filter(user=self.finance, title='Advance request awaiting approval').exists())

    def test_amount_must_be_positive(self):
        self.assertEqual(self._create(amount='0').status_code, status.HTTP_400_BAD_REQUEST)

    def test_approve_then_disburse(self):
        """Advances are paid only after approval"""
        advance_id = self._create().data['id']
        self.client.authenticate_user(self.finance)
        response = self.client.post(f'/api/v1/advance-requests/{advance_id}/disburse/', {
            'disbursement_method': 'MPESA'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.client.post(f'/api/v1/advance-requests/{advance_id}/approve/')
        response = self.client.post(f'/api/v1/advance-requests/{advance_id}/disburse/', {
            'disbursement_method': 'mpesa', 'disbursement_reference': 'QWE123RTY'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'DISBURSED')
        self.assertTrue(Notification.objects.filter(user=self.technician.user, title='Advance disbursed').exists())

        response = self.client.get('/api/v1/advance-requests/statistics/')
        self.assertEqual(response.data['total_disbursed'], Decimal('1500.00'))

    def test_invalid_disbursement_method(self):
        advance_id = self._create().data['id']
        self.client.authenticate_user(self.finance)
        self.client.post(f'/api/v1/advance-requests/{advance_id}/approve/')
        response = self.client.post(f'/api/v1/advance-requests/{advance_id}/disburse/', {
            'disbursement_method': 'CHEQUE'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_request_for_completed_job(self):
        self.job.status = 'COMPLETED'
        self.job.save()
        self.assertEqual(self._create().status_code, status.HTTP_400_BAD_REQUEST)


class InspectionTests(TestCase):
    """Test inspection submission and review"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(role='MANAGER')
        self.technician = TestDataFactory.create_technician()
        self.job = TestDataFactory.create_job()
        assign_job(self.job, [self.technician], user=self.manager)
        self.lights = ChecklistItem.objects.create(name='Lights working', category='VEHICLE_EXTERIOR', applies_to_post=False)
        self.power = ChecklistItem.objects.create(name='Device powered', category='DEVICE_COMPONENT', requires_photo=True)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.technician.user)

    def _submit(self, results):
        return self.client.post('/api/v1/inspections/submit/', {
            'job': self.job.id, 'stage': 'PRE_INSTALLATION', 'results': results,
        }, format='json')

    def test_checklist_by_stage(self):
        response = self.client.get('/api/v1/inspections/checklist/?stage=post_installation')
        self.assertEqual([row['id'] for row in response.data], [self.power.id])

    def test_submit_requires_every_item(self):
        response = self._submit([{'checklist_item': self.lights.id, 'check_status': 'CHECKED'}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Device powered', response.data['error'])

    def test_photo_required(self):
        response = self._submit([
            {'checklist_item': self.lights.id},
            {'checklist_item': self.power.id, 'check_status': 'CHECKED'},
        ])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_submit_and_approve_pre_installation(self):
        """Approved pre-installation inspections let the technician start"""
        response = self._submit([
            {'checklist_item': self.lights.id, 'check_status': 'ISSUE_FOUND', 'notes': 'Left indicator out'},
            {'checklist_item': self.power.id, 'photo_urls': ['https://cdn.test/p1.jpg']},
        ])
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['issues_found'], 1)
        self.job.refresh_from_db()
        self.assertEqual(self.job.status, 'PRE_INSPECTION_PENDING')

        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/inspections/verify/{self.job.id}/pre_installation/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['inspection']['status'], 'APPROVED')
        self.assertEqual(response.data['job']['status'], 'PRE_INSPECTION_APPROVED')

    def test_reject_needs_notes(self):
        self._submit([
            {'checklist_item': self.lights.id},
            {'checklist_item': self.power.id, 'photo_urls': ['https://cdn.test/p1.jpg']},
        ])
        self.client.authenticate_user(self.manager)
        url = f'/api/v1/inspections/verify/{self.job.id}/PRE_INSTALLATION/'
        response = self.client.post(url, {'approve': False}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(url, {'approve': False, 'notes': 'Photos blurry'}, format='json')
        self.assertEqual(response.data['job']['status'], 'ASSIGNED')

    def test_post_inspection_approval_completes_job(self):
        """Approving the post-installation inspection completes the job and activates devices"""
        device = TestDataFactory.create_device()
        transition_job(self.job, 'IN_PROGRESS')
        self.job.imei_numbers = [device.imei]
        self.job.save()
        response = self.client.post('/api/v1/inspections/submit/', {
            'job': self.job.id, 'stage': 'POST_INSTALLATION',
            'results': [{'checklist_item': self.power.id, 'photo_urls': ['https://cdn.test/p2.jpg']}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/inspections/verify/{self.job.id}/POST_INSTALLATION/')
        self.assertEqual(response.data['job']['status'], 'COMPLETED')
        device.refresh_from_db()
        self.assertEqual(device.status, 'ACTIVE')
        self.assertEqual(device.vehicle_id, self.job.vehicle_id)

    def test_statistics(self):
        self._submit([
            {'checklist_item': self.lights.id, 'check_status': 'ISSUE_FOUND'},
            {'checklist_item': self.power.id, 'photo_urls': ['https://cdn.test/p1.jpg']},
        ])
        response = self.client.get('/api/v1/inspections/statistics/')
        self.assertEqual(response.data['pending_review'], 1)
        self.assertEqual(response.data['issues_found'], 1)
        self.assertEqual(Inspection.objects.count(), 1)


class TechnicianJobTests(TestCase):
    """Test technician self-service endpoints"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(role='MANAGER')
        self.technician = TestDataFactory.create_technician()
        self.job = TestDataFactory.create_job()
        assign_job(self.job, [self.technician], user=self.manager)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.technician.user)

    def test_my_jobs_and_active_job(self):
        TestDataFactory.create_job()
        response = self.client.get('/api/v1/technician/jobs/')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/technician/jobs/active/')
        self.assertEqual(response.data['job']['id'], self.job.id)

    def test_other_technicians_job_not_found(self):
        other_job = TestDataFactory.create_job()
        assign_job(other_job, [TestDataFactory.create_technician()])
        response = self.client.post(f'/api/v1/technician/jobs/{other_job.id}/start/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_start_progress_complete(self):
        """A technician runs a job from start to completion"""
        device = TestDataFactory.create_device()
        response = self.client.post(f'/api/v1/technician/jobs/{self.job.id}/start/', {'gps_coordinates': '-1.28,36.82'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'IN_PROGRESS')
        self.assertIsNotNone(response.data['start_time'])

        response = self.client.post(f'/api/v1/technician/jobs/{self.job.id}/progress/', {
            'imei_numbers': ['123'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'/api/v1/technician/jobs/{self.job.id}/progress/', {
            'imei_numbers': [device.imei], 'device_position': 'Under dashboard',
        }, format='json')
        self.assertEqual(response.data['imei_numbers'], [device.imei])

        response = self.client.post(f'/api/v1/technician/jobs/{self.job.id}/complete/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'/api/v1/technician/jobs/{self.job.id}/complete/', {
            'photo_urls': ['https://cdn.test/install.jpg'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'COMPLETED')
        device.refresh_from_db()
        self.assertEqual(device.status, 'ACTIVE')
        self.assertTrue(Notification.objects.filter(user=self.manager, title='Job completed').exists())

    def test_complete_with_unknown_imei(self):
        transition_job(self.job, 'IN_PROGRESS')
        response = self.client.post(f'/api/v1/technician/jobs/{self.job.id}/complete/', {
            'imei_numbers': ['356938035643809'], 'photo_urls': ['https://cdn.test/a.jpg'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.job.refresh_from_db()
        self.assertEqual(self.job.status, 'IN_PROGRESS')

    def test_add_new_vehicle(self):
        response = self.client.post(f'/api/v1/technician/jobs/{self.job.id}/add-vehicle/', {
            'vehicle_reg': 'KCA 901B', 'make': 'Toyota', 'model': 'Hilux',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['vehicle_reg'], 'KCA901B')

    def test_add_vehicle_of_other_customer(self):
        response = self.client.post(f'/api/v1/technician/jobs/{self.job.id}/add-vehicle/', {
            'vehicle': TestDataFactory.create_vehicle().id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_my_statistics(self):
        response = self.client.get('/api/v1/technician/jobs/statistics/')
        self.assertEqual(response.data['total_jobs'], 1)
        self.assertEqual(response.data['active_jobs'], 1)

    def test_office_user_without_profile(self):
        self.client.authenticate_user(self.manager)
        response = self.client.get('/api/v1/technician/jobs/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
