import json
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from education.auth import generate_token
from education.models import CustomUser
from .models import Fee, FeePayment
from .utils import derive_fee_status, parse_payment_amount, normalize_fee_status, to_decimal


def make_user(email, role='student', class_name='Grade 4', name=None):
    return CustomUser.objects.create_user(
        username=email,
        email=email,
        password='testpass123',
        name=name if name is not None else email.split('@')[0].title(),
        role=role,
        class_name=class_name if role == 'student' else '',
    )


class FeeUtilsTestCase(TestCase):
    def test_derive_status(self):
        today = timezone.localdate()
        self.assertEqual(derive_fee_status(Decimal('1000'), Decimal('0')), 'pending')
        self.assertEqual(derive_fee_status(Decimal('1000'), Decimal('400')), 'partially_paid')
        self.assertEqual(derive_fee_status(Decimal('1000'), Decimal('1000')), 'paid')
        self.assertEqual(derive_fee_status(Decimal('1000'), Decimal('1200')), 'paid')
        self.assertEqual(
            derive_fee_status(Decimal('1000'), Decimal('400'), due_date=today - timedelta(days=1), today=today),
            'overdue'
        )
        self.assertEqual(
            derive_fee_status(Decimal('1000'), Decimal('1000'), current_status='cancelled'),
            'cancelled'
        )

    def test_zero_fee_with_nothing_paid_is_pending(self):
        self.assertEqual(derive_fee_status(Decimal('0'), Decimal('0')), 'pending')

    def test_nothing_paid_stays_pending_after_due_date(self):
        today = timezone.localdate()
        self.assertEqual(
            derive_fee_status(Decimal('1000'), Decimal('0'), due_date=today - timedelta(days=10), today=today),
            'pending'
        )
        self.assertEqual(
            derive_fee_status(Decimal('1000'), Decimal('1000'), due_date=today - timedelta(days=10), today=today),
            'paid'
        )

    def test_parse_payment_amount(self):
        self.assertEqual(parse_payment_amount('250.5'), Decimal('250.50'))
        self.assertEqual(parse_payment_amount(100), Decimal('100.00'))
        for bad in (None, '', 'abc', 0, -5, True, 'NaN', 'Infinity', '1e20'):
            with self.assertRaises(ValueError):
                parse_payment_amount(bad)

    def test_normalize_status(self):
        self.assertEqual(normalize_fee_status('Partially Paid'), 'partially_paid')
        self.assertEqual(normalize_fee_status('Canceled'), 'cancelled')
        self.assertEqual(normalize_fee_status('PAID'), 'paid')

    def test_to_decimal_falls_back_to_default(self):
        self.assertEqual(to_decimal('abc'), Decimal('0.00'))
        self.assertIsNone(to_decimal('', default=None))
        self.assertEqual(to_decimal('12.345'), Decimal('12.34'))


class FeeModelTestCase(TestCase):
    def setUp(self):
        self.student = make_user('student@school.test')

    def test_balance_and_status_derived_on_save(self):
        fee = Fee.objects.create(student=self.student, class_name='Grade 4', total_amount=Decimal('1000'))
        self.assertEqual(fee.balance, Decimal('1000.00'))
        self.assertEqual(fee.status, 'pending')

        fee.paid_amount = Decimal('1000')
        fee.save()
        fee.refresh_from_db()
        self.assertEqual(fee.balance, Decimal('0.00'))
        self.assertEqual(fee.status, 'paid')

    def test_unpaid_fee_past_due_date_stays_pending(self):
        fee = Fee.objects.create(
            student=self.student, class_name='Grade 4', total_amount=Decimal('1000'),
            due_date=timezone.localdate() - timedelta(days=1)
        )
        self.assertEqual(fee.paid_amount, Decimal('0.00'))
        self.assertEqual(fee.status, 'pending')

    def test_partly_paid_fee_past_due_date_is_overdue(self):
        fee = Fee.objects.create(
            student=self.student, class_name='Grade 4', total_amount=Decimal('500'),
            due_date=timezone.localdate() - timedelta(days=3)
        )
        fee, _ = Fee.record_payment(fee.pk, Decimal('200'))
        self.assertEqual(fee.status, 'overdue')
        self.assertEqual(fee.balance, Decimal('300.00'))

    def test_record_payment_accumulates(self):
        fee = Fee.objects.create(student=self.student, class_name='Grade 4', total_amount=Decimal('1000'))
        fee, payment = Fee.record_payment(fee.pk, Decimal('400'))
        self.assertEqual(fee.paid_amount, Decimal('400.00'))
        self.assertEqual(fee.status, 'partially_paid')
        self.assertTrue(payment.reference.startswith('PAY-'))
        self.assertEqual(payment.payment_method, 'Cash')

    def test_payments_are_append_only(self):
        fee = Fee.objects.create(student=self.student, class_name='Grade 4', total_amount=Decimal('1000'))
        _, payment = Fee.record_payment(fee.pk, Decimal('100'), reference='RCPT-1')
        payment.amount = Decimal('900')
        with self.assertRaises(ValueError):
            payment.save()


class FeeAPITestCase(TestCase):
    def setUp(self):
        self.admin = make_user('admin@school.test', role='admin')
        self.teacher = make_user('teacher@school.test', role='teacher')
        self.student = make_user('jane@school.test', name='Jane Doe')
        self.other_student = make_user('john@school.test', name='John Roe', class_name='Form 2')
        self.admin_token = generate_token(self.admin)
        self.teacher_token = generate_token(self.teacher)
        self.student_token = generate_token(self.student)

    def request(self, method, url, token=None, data=None):
        kwargs = {}
        if token:
            kwargs['HTTP_X_AUTH_TOKEN'] = token
        if data is not None:
            kwargs['data'] = json.dumps(data)
            kwargs['content_type'] = 'application/json'
        return getattr(self.client, method)(url, **kwargs)

    def create_fee(self, student=None, amount=1000, **extra):
        payload = {
            'student': (student or self.student).pk,
            'className': 'Grade 4',
            'amount': amount,
            'status': 'Pending',
        }
        payload.update(extra)
        response = self.request('post', '/api/fees', self.admin_token, payload)
        self.assertEqual(response.status_code, 201, response.content)
        return response.json()['fee']

    def test_requires_token(self):
        response = self.client.get('/api/fees')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['msg'], 'No token, authorization denied')

    def test_invalid_token(self):
        response = self.client.get('/api/fees', HTTP_AUTHORIZATION='Bearer not-a-token')
        self.assertEqual(response.status_code, 401)

    def test_create_fee(self):
        fee = self.create_fee(academicTerm='Term 1', academicYear='2024/2025')
        self.assertEqual(fee['totalAmount'], 1000.0)
        self.assertEqual(fee['paidAmount'], 0.0)
        self.assertEqual(fee['balance'], 1000.0)
        self.assertEqual(fee['status'], 'pending')
        self.assertEqual(fee['student']['displayName'], 'Jane Doe')
        self.assertEqual(fee['payments'], [])

    def test_create_fee_ignores_paid_amount(self):
        fee = self.create_fee(amount=1000, paidAmount=400)
        self.assertEqual(fee['paidAmount'], 0.0)
        self.assertEqual(fee['balance'], 1000.0)
        self.assertEqual(fee['status'], 'pending')
        self.assertEqual(Fee.objects.get(pk=fee['id']).paid_amount, Decimal('0.00'))

    def test_create_fee_missing_fields(self):
        response = self.request('post', '/api/fees', self.admin_token, {'student': self.student.pk})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Student, class, amount, and status are required.')

    def test_create_fee_invalid_academic_year(self):
        response = self.request('post', '/api/fees', self.admin_token, {
            'student': self.student.pk, 'className': 'Grade 4', 'amount': 100,
            'status': 'pending', 'academicYear': '2024-2025',
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('academic_year', response.json()['details'])

    def test_create_fee_requires_admin(self):
        response = self.request('post', '/api/fees', self.teacher_token, {
            'student': self.student.pk, 'className': 'Grade 4', 'amount': 100, 'status': 'pending',
        })
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['requiredRoles'], ['admin'])
        self.assertEqual(response.json()['userRole'], 'teacher')

    def test_payment_flow(self):
        fee = self.create_fee(amount=1000)
        url = f"/api/fees/{fee['id']}/payments"

        response = self.request('post', url, self.admin_token, {'amount': 400, 'reference': 'MPESA123'})
        self.assertEqual(response.status_code, 200, response.content)
        body = response.json()
        self.assertEqual(body['message'], 'Payment recorded successfully')
        self.assertEqual(body['fee']['paidAmount'], 400.0)
        self.assertEqual(body['fee']['balance'], 600.0)
        self.assertEqual(body['fee']['status'], 'partially_paid')
        self.assertEqual(body['payment']['reference'], 'MPESA123')

        response = self.request('post', url, self.admin_token, {'amount': '600'})
        body = response.json()
        self.assertEqual(body['fee']['paidAmount'], 1000.0)
        self.assertEqual(body['fee']['balance'], 0.0)
        self.assertEqual(body['fee']['status'], 'paid')
        self.assertEqual(len(body['fee']['payments']), 2)

    def test_invalid_payment_amounts_leave_fee_unchanged(self):
        fee = self.create_fee(amount=1000)
        url = f"/api/fees/{fee['id']}/payments"
        for amount in (-5, 0, 'abc', None, ''):
            response = self.request('post', url, self.admin_token, {'amount': amount})
            self.assertEqual(response.status_code, 400)

        stored = Fee.objects.get(pk=fee['id'])
        self.assertEqual(stored.paid_amount, Decimal('0.00'))
        self.assertEqual(stored.status, 'pending')
        self.assertFalse(FeePayment.objects.filter(fee=stored).exists())

    def test_payment_on_missing_fee(self):
        response = self.request('post', '/api/fees/9999/payments', self.admin_token, {'amount': 100})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'Fee record not found')

    def test_payment_requires_admin(self):
        fee = self.create_fee()
        response = self.request('post', f"/api/fees/{fee['id']}/payments", self.student_token, {'amount': 100})
        self.assertEqual(response.status_code, 403)

    def test_cancelled_fee_rejects_payments(self):
        fee = self.create_fee()
        response = self.request('put', f"/api/fees/{fee['id']}", self.admin_token, {'status': 'Canceled'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['fee']['status'], 'cancelled')

        response = self.request('post', f"/api/fees/{fee['id']}/payments", self.admin_token, {'amount': 100})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Fee.objects.get(pk=fee['id']).paid_amount, Decimal('0.00'))

    def test_update_total_rederives_status(self):
        fee = self.create_fee(amount=1000)
        self.request('post', f"/api/fees/{fee['id']}/payments", self.admin_token, {'amount': 500})
        response = self.request('put', f"/api/fees/{fee['id']}", self.admin_token, {'totalAmount': 500})
        body = response.json()['fee']
        self.assertEqual(body['balance'], 0.0)
        self.assertEqual(body['status'], 'paid')

    def test_update_rejects_unknown_status(self):
        fee = self.create_fee()
        response = self.request('put', f"/api/fees/{fee['id']}", self.admin_token, {'status': 'refunded'})
        self.assertEqual(response.status_code, 400)

    def test_delete_fee(self):
        fee = self.create_fee()
        response = self.request('delete', f"/api/fees/{fee['id']}", self.admin_token)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['msg'], 'Fee deleted successfully')

        response = self.request('get', '/api/fees', self.admin_token)
        self.assertEqual(response.json(), [])

        response = self.request('delete', f"/api/fees/{fee['id']}", self.admin_token)
        self.assertEqual(response.status_code, 404)

    def test_list_filters(self):
        self.create_fee()
        other = self.create_fee(student=self.other_student, className='Form 2')
        self.request('post', f"/api/fees/{other['id']}/payments", self.admin_token, {'amount': 100})

        response = self.request('get', '/api/fees?status=Partially%20Paid', self.admin_token)
        self.assertEqual([f['id'] for f in response.json()], [other['id']])

        response = self.request('get', '/api/fees?search=jane', self.admin_token)
        self.assertEqual(len(response.json()), 1)
        self.assertEqual(response.json()[0]['student']['name'], 'Jane Doe')

        response = self.request('get', '/api/fees?class=Form', self.admin_token)
        self.assertEqual([f['id'] for f in response.json()], [other['id']])

        response = self.request('get', '/api/fees?class=All%20Classes', self.admin_token)
        self.assertEqual(len(response.json()), 2)

    def test_student_sees_only_own_fees(self):
        own = self.create_fee()
        other = self.create_fee(student=self.other_student, className='Form 2')

        response = self.request('get', '/api/fees', self.student_token)
        self.assertEqual([f['id'] for f in response.json()], [own['id']])

        response = self.request('get', f"/api/fees/{other['id']}", self.student_token)
        self.assertEqual(response.status_code, 404)

    def test_summary(self):
        paid = self.create_fee(amount=300)
        self.request('post', f"/api/fees/{paid['id']}/payments", self.admin_token, {'amount': 300})
        self.create_fee(amount=1000)
        cancelled = self.create_fee(amount=700)
        self.request('put', f"/api/fees/{cancelled['id']}", self.admin_token, {'status': 'cancelled'})

        response = self.request('get', '/api/fees/summary', self.teacher_token)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['count'], 3)
        self.assertEqual(body['byStatus']['paid'], 1)
        self.assertEqual(body['byStatus']['pending'], 1)
        self.assertEqual(body['byStatus']['cancelled'], 1)
        self.assertEqual(body['totalBilled'], 1300.0)
        self.assertEqual(body['totalCollected'], 300.0)
        self.assertEqual(body['totalOutstanding'], 1000.0)

        response = self.request('get', '/api/fees/summary', self.student_token)
        self.assertEqual(response.status_code, 403)

    def test_receipt_pdf(self):
        fee = self.create_fee(notes='Term <1> & extras')
        self.request('post', f"/api/fees/{fee['id']}/payments", self.admin_token, {'amount': 250, 'notes': 'a & b'})

        response = self.request('get', f"/api/fees/{fee['id']}/receipt", self.student_token)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))

    def test_method_not_allowed(self):
        response = self.request('patch', '/api/fees', self.admin_token, {})
        self.assertEqual(response.status_code, 405)


class RefreshFeeStatusesCommandTestCase(TestCase):
    def setUp(self):
        self.student = make_user('student@school.test')
        self.fee = Fee.objects.create(
            student=self.student, class_name='Grade 4', total_amount=Decimal('800'),
            due_date=timezone.localdate() + timedelta(days=5)
        )
        self.fee, _ = Fee.record_payment(self.fee.pk, Decimal('300'))
        self.unpaid = Fee.objects.create(
            student=self.student, class_name='Grade 4', total_amount=Decimal('800'),
            due_date=timezone.localdate() - timedelta(days=1)
        )
        # Move the due date into the past without going through save()
        Fee.objects.filter(pk=self.fee.pk).update(due_date=timezone.localdate() - timedelta(days=1))

    def test_dry_run_does_not_save(self):
        out = StringIO()
        call_command('refresh_fee_statuses', '--dry-run', stdout=out)
        self.assertIn('[DRY RUN]', out.getvalue())
        self.fee.refresh_from_db()
        self.assertEqual(self.fee.status, 'partially_paid')

    def test_marks_partly_paid_fee_overdue(self):
        out = StringIO()
        call_command('refresh_fee_statuses', stdout=out)
        self.fee.refresh_from_db()
        self.assertEqual(self.fee.status, 'overdue')
        self.assertIn('Updated 1 fee(s)', out.getvalue())
        self.unpaid.refresh_from_db()
        self.assertEqual(self.unpaid.status, 'pending')
