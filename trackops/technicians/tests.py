"""
Test suite for technician profiles
"""
from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status

from trackops.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from trackops.technicians.models import Technician

User = get_user_model()


class TechnicianAPITests(TestCase):
    """Test technician endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='MANAGER')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_technician_creates_user(self):
        """Creating a technician creates a TECHNICIAN login with a temporary password"""
        response = self.client.post('/api/v1/technicians/', {
            'username': 'otieno',
            'first_name': 'Peter',
            'last_name': 'Otieno',
            'phone': '0722 111 222',
            'specialization': ['GPS_INSTALLATION', 'FUEL_SENSOR'],
            'location': 'Nairobi',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('temporary_password', response.data)
        self.assertTrue(response.data['technician_code'].startswith('TECH-'))
        user = User.objects.get(username='otieno')
        self.assertEqual(user.role, 'TECHNICIAN')
        self.assertEqual(user.phone, '0722111222')
        self.assertTrue(user.check_password(response.data['temporary_password']))

    def test_create_duplicate_username(self):
        TestDataFactory.create_user(username='otieno')
        response = self.client.post('/api/v1/technicians/', {
            'username': 'Otieno', 'first_name': 'Peter', 'phone': '0722111222',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_invalid_phone(self):
        response = self.client.post('/api/v1/technicians/', {
            'username': 'kamau', 'first_name': 'James', 'phone': '999',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_filters(self):
        """List filters on location and availability"""
        TestDataFactory.create_technician(location='Nairobi')
        TestDataFactory.create_technician(location='Mombasa', is_available=False)
        response = self.client.get('/api/v1/technicians/?location=nairobi')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/technicians/?is_available=false')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['location'], 'Mombasa')

    def test_update_profile_and_user(self):
        """Updates write through to the user account"""
        technician = TestDataFactory.create_technician()
        response = self.client.patch(f'/api/v1/technicians/{technician.id}/', {
            'first_name': 'Grace', 'location': 'Kisumu', 'rating': '4.50'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        technician.refresh_from_db()
        self.assertEqual(technician.user.first_name, 'Grace')
        self.assertEqual(technician.location, 'Kisumu')

    def test_invalid_rating(self):
        technician = TestDataFactory.create_technician()
        response = self.client.patch(f'/api/v1/technicians/{technician.id}/', {'rating': '7'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_toggle_availability(self):
        technician = TestDataFactory.create_technician()
        response = self.client.post(f'/api/v1/technicians/{technician.id}/toggle-availability/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_available'])

    def test_delete_deactivates_user(self):
        """Deleting a technician keeps the account but disables it"""
        technician = TestDataFactory.create_technician()
        user_id = technician.user_id
        response = self.client.delete(f'/api/v1/technicians/{technician.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Technician.objects.filter(pk=technician.id).exists())
        self.assertFalse(User.objects.get(pk=user_id).is_active)

    def test_delete_with_open_job_refused(self):
        technician = TestDataFactory.create_technician()
        job = TestDataFactory.create_job(status='ASSIGNED')
        job.technicians.add(technician)
        response = self.client.delete(f'/api/v1/technicians/{technician.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_nearest_available_ordering(self):
        """Matching specialization first, then fewest open jobs"""
        busy = TestDataFactory.create_technician(location='Nairobi West', specialization=['CCTV'])
        idle = TestDataFactory.create_technician(location='Nairobi CBD', specialization=['CCTV'])
        specialist = TestDataFactory.create_technician(location='Nairobi', specialization=['FUEL_SENSOR'])
        TestDataFactory.create_technician(location='Nairobi', is_available=False)
        TestDataFactory.create_technician(location='Eldoret')
        job = TestDataFactory.create_job(status='IN_PROGRESS')
        job.technicians.add(busy)

        response = self.client.get('/api/v1/technicians/nearest-available/?location=nairobi&specialization=fuel_sensor')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data], [specialist.id, idle.id, busy.id])
        self.assertEqual(response.data[2]['active_jobs'], 1)

    def test_technician_role_cannot_list(self):
        """Technicians have no access to the technician register"""
        self.client.authenticate_user(TestDataFactory.create_user(role='TECHNICIAN'))
        response = self.client.get('/api/v1/technicians/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
