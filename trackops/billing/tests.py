"""
Test suite for invoices, quotations, payments, the customer ledger and processing fees
"""
from datetime import timedelta
from decimal import Decimal

from django.core import mail
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status

from trackops.billing.calculations import document_totals, status_after_payment, is_overdue, processing_fee_amount
from trackops.billing.models import Invoice, Transaction, ProcessingFee
from trackops.billing.services import (
    change_invoice_status, cancel_invoice, process_payment, customer_balance, mark_overdue_invoices,
    convert_proforma, convert_quotation, create_quotation, create_invoice_from_job, change_quotation_status,
    settle_processing_fees, create_invoice,
)
from trackops.core.exceptions import BillingError
from trackops.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class CalculationTests(TestCase):
    """Test money arithmetic"""

    def test_document_totals(self):
        """Tax is charged on the discounted subtotal"""
        totals = document_totals([Decimal('1000.00'), Decimal('500.00')], discount_amount='100', tax_rate='16')
        self.assertEqual(totals['subtotal'], Decimal('1500.00'))
        self.assertEqual(totals['tax_amount'], Decimal('224.00'))
        self.assertEqual(totals['total'], Decimal('1624.00'))

    def test_discount_limits(self):
        with self.assertRaises(BillingError):
            document_totals([Decimal('100.00')], discount_amount='150')
        with self.assertRaises(BillingError):
            document_totals([Decimal('100.00')], discount_amount='-1')

    def test_status_after_payment(self):
        self.assertEqual(status_after_payment('SENT', Decimal('100'), Decimal('100')), 'PAID')
        self.assertEqual(status_after_payment('OVERDUE', Decimal('100'), Decimal('40')), 'PARTIAL')
        self.assertEqual(status_after_payment('SENT', Decimal('100'), Decimal('0')), 'SENT')

    def test_is_overdue(self):
        today = timezone.localdate()
        yesterday = today - timedelta(days=1)
        self.assertTrue(is_overdue('SENT', yesterday, Decimal('100'), Decimal('0'), today))
        self.assertFalse(is_overdue('SENT', today, Decimal('100'), Decimal('0'), today))
        self.assertFalse(is_overdue('DRAFT', yesterday, Decimal('100'), Decimal('0'), today))
        self.assertFalse(is_overdue('PARTIAL', yesterday, Decimal('100'), Decimal('100'), today))

    def test_processing_fee_amount(self):
        self.assertEqual(processing_fee_amount(Decimal('1000.00'), Decimal('1.50')), Decimal('15.00'))


class InvoiceLedgerTests(TestCase):
    """Test how invoices reach the customer ledger"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='FINANCE')
        self.customer = TestDataFactory.create_customer()

    def test_sent_invoice_posts_debit(self):
        invoice = TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('1200.00'))
        entry = Transaction.objects.get(invoice=invoice)
        self.assertEqual(entry.transaction_type, 'INVOICE')
        self.assertEqual(entry.debit, Decimal('1200.00'))
        self.assertEqual(customer_balance(self.customer), Decimal('1200.00'))

    def test_draft_and_proforma_not_posted(self):
        """Drafts and proformas never touch the ledger"""
        TestDataFactory.create_invoice(customer=self.customer, status='DRAFT')
        TestDataFactory.create_invoice(customer=self.customer, invoice_type='PROFORMA')
        self.assertFalse(Transaction.objects.exists())
        self.assertEqual(customer_balance(self.customer), Decimal('0.00'))

    def test_sending_draft_posts_once(self):
        invoice = TestDataFactory.create_invoice(customer=self.customer, status='DRAFT')
        change_invoice_status(invoice, 'SENT', user=self.user)
        self.assertEqual(Transaction.objects.filter(invoice=invoice).count(), 1)

    def test_fully_discounted_invoice_not_posted(self):
        """An invoice with nothing owed stays off the ledger"""
        invoice = TestDataFactory.create_invoice(
            customer=self.customer, unit_price=Decimal('100.00'), discount_amount=Decimal('100.00'),
        )
        self.assertEqual(invoice.total, Decimal('0.00'))
        self.assertEqual(invoice.status, 'SENT')
        self.assertFalse(Transaction.objects.filter(invoice=invoice).exists())
        self.assertEqual(customer_balance(self.customer), Decimal('0.00'))

    def test_one_active_invoice_per_job(self):
        """A job can be invoiced again only after its invoice is cancelled"""
        job = TestDataFactory.create_job(customer=self.customer, products=[TestDataFactory.create_product()], status='VERIFIED')
        items = [{'description': 'Installation', 'quantity': 1, 'unit_price': Decimal('1500.00')}]
        first = create_invoice(self.customer, items, user=self.user, job=job)
        with self.assertRaises(BillingError):
            create_invoice(self.customer, items, user=self.user, job=job)
        cancel_invoice(first, 'Raised in error', user=self.user)
        second = create_invoice(self.customer, items, user=self.user, job=job)
        self.assertEqual(second.job, job)

    def test_back_to_draft_reverses(self):
        """Returning to draft credits the posted amount back"""
        invoice = TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('800.00'))
        change_invoice_status(invoice, 'DRAFT', user=self.user)
        reversal = Transaction.objects.filter(invoice=invoice).order_by('-id').first()
        self.assertEqual(reversal.transaction_type, 'ADJUSTMENT')
        self.assertEqual(reversal.credit, Decimal('800.00'))
        self.assertEqual(customer_balance(self.customer), Decimal('0.00'))

        change_invoice_status(invoice, 'SENT', user=self.user)
        self.assertEqual(customer_balance(self.customer), Decimal('800.00'))

    def test_manual_paid_not_allowed(self):
        invoice = TestDataFactory.create_invoice(customer=self.customer)
        with self.assertRaises(BillingError):
            change_invoice_status(invoice, 'PAID')

    def test_cancel_reverses_and_blocks_paid(self):
        invoice = TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('500.00'))
        cancel_invoice(invoice, 'Raised in error', user=self.user)
        self.assertEqual(invoice.status, 'CANCELLED')
        self.assertEqual(customer_balance(self.customer), Decimal('0.00'))
        with self.assertRaises(BillingError):
            cancel_invoice(invoice, 'again')

        paid = TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('500.00'))
        method = TestDataFactory.create_payment_method()
        process_payment(self.customer, method, Decimal('100.00'), [{'invoice': paid, 'amount': Decimal('100.00')}])
        paid.refresh_from_db()
        with self.assertRaises(BillingError):
            cancel_invoice(paid, 'too late')

    def test_mark_overdue(self):
        past_due = TestDataFactory.create_invoice(customer=self.customer,
                                                  due_date=timezone.localdate() - timedelta(days=3),
                                                  issue_date=timezone.localdate() - timedelta(days=33))
        TestDataFactory.create_invoice(customer=self.customer)
        self.assertEqual(mark_overdue_invoices(), 1)
        past_due.refresh_from_db()
        self.assertEqual(past_due.status, 'OVERDUE')

    def test_convert_proforma(self):
        """Conversion issues a posted standard invoice and cancels the proforma"""
        proforma = TestDataFactory.create_invoice(customer=self.customer, invoice_type='PROFORMA', unit_price=Decimal('900.00'))
        invoice = convert_proforma(proforma, user=self.user)
        proforma.refresh_from_db()
        self.assertEqual(invoice.invoice_type, 'STANDARD')
        self.assertEqual(invoice.status, 'SENT')
        self.assertEqual(invoice.converted_from, proforma)
        self.assertEqual(proforma.status, 'CANCELLED')
        self.assertEqual(customer_balance(self.customer), Decimal('900.00'))
        with self.assertRaises(BillingError):
            convert_proforma(proforma)

    def test_invoice_from_job(self):
        """One line per product; serialized products are counted by installed devices"""
        tracker = TestDataFactory.create_product(selling_price=Decimal('6000.00'), is_serialized=True)
        relay = TestDataFactory.create_product(selling_price=Decimal('1500.00'))
        job = TestDataFactory.create_job(customer=self.customer, products=[tracker, relay], status='COMPLETED')
        job.devices.add(TestDataFactory.create_device(product=tracker), TestDataFactory.create_device(product=tracker))

        invoice = create_invoice_from_job(job, user=self.user)
        self.assertEqual(invoice.job, job)
        self.assertEqual(invoice.total, Decimal('13500.00'))
        self.assertEqual(invoice.status, 'DRAFT')
        with self.assertRaises(BillingError):
            create_invoice_from_job(job)

    def test_invoice_from_open_job_refused(self):
        job = TestDataFactory.create_job(products=[TestDataFactory.create_product()], status='IN_PROGRESS')
        with self.assertRaises(BillingError):
            create_invoice_from_job(job)


class QuotationTests(TestCase):
    """Test quotation lifecycle"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.items = [{'description': 'Tracker', 'quantity': Decimal('2'), 'unit_price': Decimal('5000.00')}]

    def test_status_flow_and_conversion(self):
        """Only sent or approved quotations convert, into a draft invoice"""
        quotation = create_quotation(self.customer, self.items, tax_rate=Decimal('0.00'))
        self.assertEqual(quotation.total, Decimal('10000.00'))
        with self.assertRaises(BillingError):
            convert_quotation(quotation)

        change_quotation_status(quotation, 'SENT')
        change_quotation_status(quotation, 'APPROVED')
        invoice = convert_quotation(quotation)
        self.assertEqual(quotation.status, 'CONVERTED')
        self.assertEqual(invoice.status, 'DRAFT')
        self.assertEqual(invoice.quotation, quotation)
        self.assertEqual(invoice.total, Decimal('10000.00'))

    def test_illegal_status(self):
        quotation = create_quotation(self.customer, self.items)
        with self.assertRaises(BillingError):
            change_quotation_status(quotation, 'APPROVED')


class PaymentTests(TestCase):
    """Test payment allocation and processing fees"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='FINANCE')
        self.customer = TestDataFactory.create_customer()
        self.mpesa = TestDataFactory.create_payment_method(processing_fee_percentage=Decimal('1.50'))
        self.first = TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('1000.00'))
        self.second = TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('500.00'))

    def test_split_payment(self):
        """A payment split across invoices updates each and credits the ledger once"""
        receipt = process_payment(self.customer, self.mpesa, Decimal('1200.00'), [
            {'invoice': self.first, 'amount': Decimal('1000.00')},
            {'invoice': self.second, 'amount': Decimal('200.00')},
        ], user=self.user)
        self.first.refresh_from_db()
        self.second.refresh_from_db()
        self.assertEqual(self.first.status, 'PAID')
        self.assertEqual(self.second.status, 'PARTIAL')
        self.assertEqual(self.second.outstanding, Decimal('300.00'))
        self.assertEqual(customer_balance(self.customer), Decimal('300.00'))
        fee = ProcessingFee.objects.get(receipt=receipt)
        self.assertEqual(fee.fee_amount, Decimal('18.00'))
        self.assertFalse(fee.is_cleared)

    def test_allocations_must_match_amount(self):
        with self.assertRaises(BillingError):
            process_payment(self.customer, self.mpesa, Decimal('1000.00'), [
                {'invoice': self.first, 'amount': Decimal('900.00')},
            ])

    def test_over_allocation_rolls_back(self):
        """Nothing is recorded when one allocation is invalid"""
        with self.assertRaises(BillingError):
            process_payment(self.customer, self.mpesa, Decimal('1100.00'), [
                {'invoice': self.first, 'amount': Decimal('500.00')},
                {'invoice': self.second, 'amount': Decimal('600.00')},
            ])
        self.first.refresh_from_db()
        self.assertEqual(self.first.amount_paid, Decimal('0.00'))
        self.assertFalse(ProcessingFee.objects.exists())

    def test_other_customer_invoice(self):
        other = TestDataFactory.create_invoice()
        with self.assertRaises(BillingError):
            process_payment(self.customer, self.mpesa, Decimal('100.00'), [{'invoice': other, 'amount': Decimal('100.00')}])

    def test_proforma_and_draft_cannot_be_paid(self):
        proforma = TestDataFactory.create_invoice(customer=self.customer, invoice_type='PROFORMA')
        draft = TestDataFactory.create_invoice(customer=self.customer, status='DRAFT')
        for invoice in (proforma, draft):
            with self.assertRaises(BillingError):
                process_payment(self.customer, self.mpesa, Decimal('10.00'), [{'invoice': invoice, 'amount': Decimal('10.00')}])

    def test_inactive_method(self):
        self.mpesa.is_active = False
        self.mpesa.save()
        with self.assertRaises(BillingError):
            process_payment(self.customer, self.mpesa, Decimal('10.00'), [{'invoice': self.first, 'amount': Decimal('10.00')}])

    def test_settle_processing_fees(self):
        """Settlement clears every fee in the period"""
        today = timezone.localdate()
        process_payment(self.customer, self.mpesa, Decimal('1000.00'), [{'invoice': self.first, 'amount': Decimal('1000.00')}])
        process_payment(self.customer, self.mpesa, Decimal('500.00'), [{'invoice': self.second, 'amount': Decimal('500.00')}])
        settlement = settle_processing_fees(today - timedelta(days=1), today, user=self.user)
        self.assertEqual(settlement.transaction_count, 2)
        self.assertEqual(settlement.total_fee_amount, Decimal('22.50'))
        self.assertFalse(ProcessingFee.objects.filter(is_cleared=False).exists())
        with self.assertRaises(BillingError):
            settle_processing_fees(today, today)


class InvoiceAPITests(TestCase):
    """Test invoice and quotation endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='FINANCE')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()

    def test_create_invoice(self):
        """Totals are computed server side from the items"""
        product = TestDataFactory.create_product(selling_price=Decimal('6500.00'))
        response = self.client.post('/api/v1/invoices/', {
            'customer': self.customer.id,
            'tax_rate': '16.00',
            'discount_amount': '500.00',
            'items': [
                {'product': product.id, 'quantity': '1'},
                {'description': 'Installation', 'quantity': '1', 'unit_price': '1500.00'},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'DRAFT')
        self.assertEqual(response.data['subtotal'], '8000.00')
        self.assertEqual(response.data['tax_amount'], '1200.00')
        self.assertEqual(response.data['total'], '8700.00')
        self.assertEqual(len(response.data['items']), 2)
        self.assertEqual(response.data['items'][0]['description'], product.name)

    def test_create_invoice_requires_items(self):
        response = self.client.post('/api/v1/invoices/', {'customer': self.customer.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_item_without_price(self):
        response = self.client.post('/api/v1/invoices/', {
            'customer': self.customer.id, 'items': [{'description': 'Labour'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_status_endpoint(self):
        """Status moves through ?status= or the body"""
        invoice = TestDataFactory.create_invoice(customer=self.customer, status='DRAFT')
        response = self.client.post(f'/api/v1/invoices/{invoice.id}/status/?status=sent')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'SENT')
        response = self.client.post(f'/api/v1/invoices/{invoice.id}/status/', {'status': 'PAID'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_drafts_editable_and_deletable(self):
        invoice = TestDataFactory.create_invoice(customer=self.customer)
        response = self.client.patch(f'/api/v1/invoices/{invoice.id}/', {'notes': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.delete(f'/api/v1/invoices/{invoice.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        draft = TestDataFactory.create_invoice(customer=self.customer, status='DRAFT')
        response = self.client.patch(f'/api/v1/invoices/{draft.id}/', {'discount_amount': '100.00'}, format='json')
        self.assertEqual(response.data['total'], '900.00')
        self.assertEqual(self.client.delete(f'/api/v1/invoices/{draft.id}/').status_code, status.HTTP_204_NO_CONTENT)

    def test_summary(self):
        TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('1000.00'))
        TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('400.00'), status='DRAFT')
        response = self.client.get('/api/v1/invoices/summary/')
        self.assertEqual(response.data['total_invoices'], 2)
        self.assertEqual(response.data['total_outstanding'], Decimal('1000.00'))
        self.assertEqual(response.data['by_status']['DRAFT']['count'], 1)

    def test_job_invoice_endpoints(self):
        job = TestDataFactory.create_job(customer=self.customer, products=[TestDataFactory.create_product()], status='VERIFIED')
        self.assertFalse(self.client.get(f'/api/v1/invoices/job/{job.id}/exists/').data['exists'])
        response = self.client.post(f'/api/v1/invoices/create-from-job/{job.id}/')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.get(f'/api/v1/invoices/job/{job.id}/exists/')
        self.assertTrue(response.data['exists'])
        response = self.client.post(f'/api/v1/invoices/create-from-job/{job.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_pdf(self):
        invoice = TestDataFactory.create_invoice(customer=self.customer)
        response = self.client.get(f'/api/v1/invoices/{invoice.id}/pdf/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))

    def test_send_marks_draft_sent(self):
        """Sending e-mails the PDF and posts the draft"""
        invoice = TestDataFactory.create_invoice(customer=self.customer, status='DRAFT')
        response = self.client.post(f'/api/v1/invoices/{invoice.id}/send/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['invoice']['status'], 'SENT')
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, [self.customer.email])
        self.assertEqual(mail.outbox[0].attachments[0][2], 'application/pdf')
        self.assertTrue(Transaction.objects.filter(invoice=invoice).exists())

    def test_send_without_email(self):
        customer = TestDataFactory.create_customer(email='')
        invoice = TestDataFactory.create_invoice(customer=customer)
        response = self.client.post(f'/api/v1/invoices/{invoice.id}/send/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_fully_discounted_invoice_as_sent(self):
        response = self.client.post('/api/v1/invoices/', {
            'customer': self.customer.id,
            'status': 'SENT',
            'tax_rate': '0.00',
            'discount_amount': '100.00',
            'items': [{'description': 'Goodwill installation', 'quantity': '1', 'unit_price': '100.00'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total'], '0.00')
        self.assertEqual(response.data['status'], 'SENT')
        self.assertFalse(Transaction.objects.exists())

    def test_send_fully_discounted_draft(self):
        invoice = TestDataFactory.create_invoice(
            customer=self.customer, status='DRAFT', unit_price=Decimal('100.00'), discount_amount=Decimal('100.00'),
        )
        response = self.client.post(f'/api/v1/invoices/{invoice.id}/send/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['invoice']['status'], 'SENT')
        self.assertEqual(len(mail.outbox), 1)
        self.assertFalse(Transaction.objects.filter(invoice=invoice).exists())

    def test_second_invoice_for_job_refused(self):
        job = TestDataFactory.create_job(customer=self.customer, products=[TestDataFactory.create_product()], status='VERIFIED')
        payload = {
            'customer': self.customer.id,
            'job': job.id,
            'items': [{'description': 'Installation', 'quantity': '1', 'unit_price': '1500.00'}],
        }
        response = self.client.post('/api/v1/invoices/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post('/api/v1/invoices/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('job', response.data)
        self.assertEqual(Invoice.objects.filter(job=job).count(), 1)

    def test_quotation_api(self):
        response = self.client.post('/api/v1/quotations/', {
            'customer': self.customer.id,
            'items': [{'description': 'Fleet trackers', 'quantity': '5', 'unit_price': '6000.00'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        quotation_id = response.data['id']
        self.assertEqual(response.data['total'], '30000.00')

        response = self.client.post(f'/api/v1/quotations/{quotation_id}/send-email/', {}, format='json')
        self.assertEqual(response.data['quotation']['status'], 'SENT')
        response = self.client.post(f'/api/v1/quotations/{quotation_id}/convert-to-invoice/')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['quotation'], quotation_id)
        response = self.client.delete(f'/api/v1/quotations/{quotation_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_technician_has_no_invoice_access(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='TECHNICIAN'))
        self.assertEqual(self.client.get('/api/v1/invoices/').status_code, status.HTTP_403_FORBIDDEN)


class PaymentAPITests(TestCase):
    """Test payment, ledger and processing fee endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(role='FINANCE')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer()
        self.method = TestDataFactory.create_payment_method(processing_fee_percentage=Decimal('2.00'))
        self.invoice = TestDataFactory.create_invoice(customer=self.customer, unit_price=Decimal('2000.00'))

    def _pay(self, amount='2000.00', allocated=None):
        return self.client.post('/api/v1/payments/process/', {
            'customer': self.customer.id,
            'payment_method': self.method.id,
            'amount': amount,
            'reference': 'RKT12AB34',
            'allocations': [{'invoice': self.invoice.id, 'amount': allocated or amount}],
        }, format='json')

    def test_process_payment(self):
        response = self._pay()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['processing_fee_amount'], '40.00')
        self.assertEqual(len(response.data['allocations']), 1)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, 'PAID')

    def test_payment_mismatch(self):
        response = self._pay(amount='2000.00', allocated='1500.00')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_outstanding_invoices(self):
        TestDataFactory.create_invoice(customer=self.customer, status='DRAFT')
        response = self.client.get(f'/api/v1/payments/customers/{self.customer.id}/outstanding-invoices/')
        self.assertEqual(len(response.data['invoices']), 1)
        self.assertEqual(response.data['total_outstanding'], Decimal('2000.00'))

    def test_payment_summary(self):
        self._pay()
        response = self.client.get('/api/v1/payments/summary/')
        self.assertEqual(response.data['total_received'], Decimal('2000.00'))
        self.assertEqual(response.data['processing_fees'], Decimal('40.00'))
        self.assertEqual(response.data['by_method'][0]['payment_method'], self.method.name)

    def test_manual_ledger_entry(self):
        """Manual entries need exactly one side"""
        response = self.client.post('/api/v1/transactions/manual/', {
            'customer': self.customer.id, 'transaction_type': 'ADJUSTMENT', 'description': 'Goodwill',
            'debit': '10.00', 'credit': '10.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post('/api/v1/transactions/manual/', {
            'customer': self.customer.id, 'transaction_type': 'ADJUSTMENT', 'description': 'Goodwill',
            'credit': '250.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['balance_bf'], '2000.00')
        self.assertEqual(response.data['balance_cf'], '1750.00')

    def test_manager_cannot_post_ledger_entries(self):
        self.client.authenticate_user(TestDataFactory.create_user(role='MANAGER'))
        response = self.client.post('/api/v1/transactions/manual/', {
            'customer': self.customer.id, 'transaction_type': 'ADJUSTMENT', 'description': 'x', 'credit': '1.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.client.get('/api/v1/transactions/').status_code, status.HTTP_200_OK)

    def test_transaction_summary(self):
        self._pay(amount='500.00')
        response = self.client.get('/api/v1/transactions/summary/')
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(response.data['net'], Decimal('1500.00'))

    def test_settle_fees_api(self):
        self._pay()
        today = timezone.localdate()
        response = self.client.get('/api/v1/processing-fees/pending-summary/')
        self.assertEqual(response.data['total_pending'], Decimal('40.00'))
        response = self.client.post('/api/v1/processing-fees/settle/', {
            'period_start': str(today), 'period_end': str(today),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.get(f"/api/v1/processing-fees/settlements/{response.data['id']}/")
        self.assertEqual(len(response.data['fees']), 1)

    def test_payment_method_fee_range(self):
        response = self.client.post('/api/v1/payment-methods/', {
            'name': 'Card', 'method_type': 'CARD', 'processing_fee_percentage': '120.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @override_settings(DEFAULT_PROCESSING_FEE_PERCENTAGE=Decimal('2.50'))
    def test_payment_method_default_fee(self):
        """Methods created without a fee rate take the configured default"""
        response = self.client.post('/api/v1/payment-methods/', {'name': 'Card', 'method_type': 'CARD'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['processing_fee_percentage'], '2.50')
        response = self.client.post('/api/v1/payment-methods/', {
            'name': 'Bank', 'method_type': 'BANK_TRANSFER', 'processing_fee_percentage': '0.00',
        }, format='json')
        self.assertEqual(response.data['processing_fee_percentage'], '0.00')
