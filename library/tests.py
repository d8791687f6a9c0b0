import json
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase, override_settings
from django.utils import timezone

from education.auth import generate_token
from education.models import CustomUser
from .models import Book, BookCheckout, CheckoutRejected


def make_user(email, role='student', class_name='Grade 4', name=None):
    return CustomUser.objects.create_user(
        username=email,
        email=email,
        password='testpass123',
        name=name if name is not None else email.split('@')[0].title(),
        role=role,
        class_name=class_name if role == 'student' else '',
    )


class BookCheckoutModelTestCase(TestCase):
    def setUp(self):
        self.student = make_user('jane@school.test', name='Jane Doe')
        self.book = Book.objects.create(title='Kifaru', author='A. Writer', class_name='Grade 4', copies=2, available=2)

    def test_check_out_takes_a_copy(self):
        due = timezone.localdate() + timedelta(days=7)
        checkout = BookCheckout.check_out(self.book.pk, self.student, due)
        self.book.refresh_from_db()
        self.assertEqual(self.book.available, 1)
        self.assertEqual(checkout.status, 'checked_out')

    def test_status_is_derived_against_today(self):
        checkout = BookCheckout.objects.create(
            book=self.book, student=self.student, due_date=timezone.localdate() + timedelta(days=1)
        )
        self.assertEqual(checkout.status, 'checked_out')
        later = timezone.localdate() + timedelta(days=4)
        self.assertEqual(checkout.derive_status(later), 'overdue')
        self.assertEqual(checkout.days_overdue(later), 3)

    @override_settings(LIBRARY_FINE_PER_DAY=Decimal('5'))
    def test_late_return_is_fined(self):
        checkout = BookCheckout.objects.create(
            book=self.book, student=self.student, due_date=timezone.localdate() - timedelta(days=3)
        )
        self.assertEqual(checkout.status, 'overdue')

        checkout = BookCheckout.return_copy(checkout.pk)
        self.assertEqual(checkout.status, 'returned')
        self.assertEqual(checkout.fine, Decimal('15'))

        with self.assertRaises(CheckoutRejected):
            BookCheckout.return_copy(checkout.pk)

    def test_return_never_exceeds_copies(self):
        checkout = BookCheckout.objects.create(
            book=self.book, student=self.student, due_date=timezone.localdate() + timedelta(days=3)
        )
        BookCheckout.return_copy(checkout.pk)
        self.book.refresh_from_db()
        self.assertEqual(self.book.available, 2)


@override_settings(LIBRARY_FINE_PER_DAY=Decimal('5'), LIBRARY_RENEWAL_DAYS=14)
class LibraryAPITestCase(TestCase):
    def setUp(self):
        self.admin = make_user('admin@school.test', role='admin')
        self.teacher = make_user('teacher@school.test', role='teacher')
        self.student = make_user('jane@school.test', name='Jane Doe')
        self.classmate = make_user('john@school.test', name='John Roe')
        self.teacher_token = generate_token(self.teacher)
        self.student_token = generate_token(self.student)
        self.due = (timezone.localdate() + timedelta(days=7)).isoformat()

    def request(self, method, url, token=None, data=None):
        kwargs = {}
        if token:
            kwargs['HTTP_X_AUTH_TOKEN'] = token
        if data is not None:
            kwargs['data'] = json.dumps(data)
            kwargs['content_type'] = 'application/json'
        return getattr(self.client, method)(url, **kwargs)

    def add_book(self, title='Kifaru', copies=1, **extra):
        payload = {'title': title, 'author': 'A. Writer', 'className': 'Grade 4', 'copies': copies}
        payload.update(extra)
        response = self.request('post', '/api/library', self.teacher_token, payload)
        self.assertEqual(response.status_code, 201, response.content)
        return response.json()['book']

    def check_out(self, book, student=None, due=None):
        return self.request('post', '/api/checkouts', self.teacher_token, {
            'bookId': book['id'], 'studentId': (student or self.student).pk, 'dueDate': due or self.due,
        })

    def test_add_and_filter_books(self):
        book = self.add_book(copies=3, genre='Fiction')
        self.assertEqual(book['available'], 3)
        self.add_book(title='Atlas of Kenya', genre='Geography', className='Form 2')

        response = self.request('get', '/api/library?search=kifaru', self.student_token)
        self.assertEqual([b['title'] for b in response.json()], ['Kifaru'])
        response = self.request('get', '/api/library?genre=geography', self.student_token)
        self.assertEqual([b['title'] for b in response.json()], ['Atlas of Kenya'])
        response = self.request('get', '/api/library?class=All', self.student_token)
        self.assertEqual(len(response.json()), 2)

    def test_add_book_validation_and_roles(self):
        response = self.request('post', '/api/library', self.teacher_token, {'title': 'No author'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Title, author, and class are required.')

        response = self.request('post', '/api/library', self.teacher_token, {
            'title': 'T', 'author': 'A', 'className': 'Grade 4', 'copies': 0,
        })
        self.assertEqual(response.status_code, 400)

        response = self.request('post', '/api/library', self.student_token, {
            'title': 'T', 'author': 'A', 'className': 'Grade 4',
        })
        self.assertEqual(response.status_code, 403)

    def test_checkout_and_return(self):
        book = self.add_book(copies=1)

        response = self.check_out(book)
        self.assertEqual(response.status_code, 201, response.content)
        checkout = response.json()
        self.assertEqual(checkout['status'], 'checked_out')
        self.assertEqual(checkout['student']['displayName'], 'Jane Doe')
        self.assertEqual(Book.objects.get(pk=book['id']).available, 0)

        response = self.check_out(book, student=self.classmate)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['msg'], 'No available copies of this book')

        response = self.request('put', f"/api/checkouts/{checkout['id']}/return", self.teacher_token)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['checkout']['status'], 'returned')
        self.assertEqual(body['checkout']['fine'], 0.0)
        self.assertEqual(body['availableCopies'], 1)

        response = self.request('put', f"/api/checkouts/{checkout['id']}/return", self.teacher_token)
        self.assertEqual(response.status_code, 400)

    def test_checkout_validation(self):
        book = self.add_book(copies=2)

        response = self.request('post', '/api/checkouts', self.teacher_token, {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(len(response.json()['errors']), 3)

        yesterday = (timezone.localdate() - timedelta(days=1)).isoformat()
        response = self.check_out(book, due=yesterday)
        self.assertEqual(response.status_code, 400)

        response = self.check_out({'id': 99999})
        self.assertEqual(response.status_code, 404)

        response = self.check_out(book, student=self.teacher)
        self.assertEqual(response.status_code, 404)

        self.assertEqual(self.check_out(book).status_code, 201)
        response = self.check_out(book)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Book.objects.get(pk=book['id']).available, 1)

        response = self.request('post', '/api/checkouts', self.student_token, {
            'bookId': book['id'], 'studentId': self.student.pk, 'dueDate': self.due,
        })
        self.assertEqual(response.status_code, 403)

    def test_overdue_books_block_new_checkouts(self):
        book = self.add_book(copies=3)
        late = BookCheckout.objects.create(
            book_id=book['id'], student=self.student, due_date=timezone.localdate() - timedelta(days=3)
        )

        response = self.request('get', '/api/checkouts/overdue', self.teacher_token)
        overdue = response.json()
        self.assertEqual([c['id'] for c in overdue], [late.pk])
        self.assertEqual(overdue[0]['status'], 'overdue')
        self.assertEqual(overdue[0]['daysOverdue'], 3)
        self.assertEqual(overdue[0]['fine'], 15.0)

        other = self.add_book(title='Other')
        response = self.check_out(other)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['overdueCheckouts'], [late.pk])

        response = self.request('put', f'/api/checkouts/{late.pk}/return', self.teacher_token)
        self.assertEqual(response.json()['checkout']['fine'], 15.0)
        self.assertEqual(BookCheckout.objects.get(pk=late.pk).fine, Decimal('15.00'))

        self.assertEqual(self.check_out(other).status_code, 201)

    def test_renew(self):
        book = self.add_book()
        checkout = self.check_out(book).json()

        response = self.request('put', f"/api/checkouts/{checkout['id']}/renew", self.teacher_token)
        self.assertEqual(response.status_code, 200)
        expected = (timezone.localdate() + timedelta(days=21)).isoformat()
        self.assertEqual(response.json()['dueDate'], expected)
        self.assertEqual(response.json()['renewals'], 1)

        self.request('put', f"/api/checkouts/{checkout['id']}/return", self.teacher_token)
        response = self.request('put', f"/api/checkouts/{checkout['id']}/renew", self.teacher_token)
        self.assertEqual(response.status_code, 400)

        response = self.request('put', '/api/checkouts/99999/renew', self.teacher_token)
        self.assertEqual(response.status_code, 404)

    def test_update_copies(self):
        book = self.add_book(copies=2)
        self.check_out(book)
        self.check_out(book, student=self.classmate)
        url = f"/api/library/{book['id']}"

        response = self.request('put', url, self.teacher_token, {
            'title': 'Kifaru', 'author': 'A. Writer', 'className': 'Grade 4', 'copies': 1,
        })
        self.assertEqual(response.status_code, 400)

        response = self.request('put', url, self.teacher_token, {
            'title': 'Kifaru (2nd ed.)', 'author': 'A. Writer', 'className': 'Grade 4', 'copies': 5,
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['book']['available'], 3)
        self.assertEqual(response.json()['book']['title'], 'Kifaru (2nd ed.)')

    def test_delete_book(self):
        book = self.add_book()
        checkout = self.check_out(book).json()
        url = f"/api/library/{book['id']}"

        response = self.request('delete', url, self.teacher_token)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['activeCheckouts'], 1)

        self.request('put', f"/api/checkouts/{checkout['id']}/return", self.teacher_token)
        response = self.request('delete', url, self.teacher_token)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Book.objects.exists())
        self.assertFalse(BookCheckout.objects.exists())

    def test_student_views(self):
        book = self.add_book(copies=2)
        self.check_out(book)
        self.check_out(book, student=self.classmate)

        response = self.request('get', '/api/library/my-books', self.student_token)
        self.assertEqual([c['student']['name'] for c in response.json()], ['Jane Doe'])

        response = self.request('get', f'/api/checkouts/student/{self.student.pk}', self.student_token)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 1)

        response = self.request('get', f'/api/checkouts/student/{self.classmate.pk}', self.student_token)
        self.assertEqual(response.status_code, 403)

        response = self.request('get', f'/api/checkouts/student/{self.classmate.pk}', self.teacher_token)
        self.assertEqual(len(response.json()), 1)

        response = self.request('get', '/api/checkouts/current', self.student_token)
        self.assertEqual(response.status_code, 403)

    def test_current_and_report(self):
        book = self.add_book(copies=3)
        first = self.check_out(book).json()
        self.check_out(book, student=self.classmate)
        self.request('put', f"/api/checkouts/{first['id']}/return", self.teacher_token)

        response = self.request('get', '/api/checkouts/current', self.teacher_token)
        self.assertEqual([c['student']['name'] for c in response.json()], ['John Roe'])

        today = timezone.localdate().isoformat()
        response = self.request('get', f'/api/checkouts/report?startDate={today}&endDate={today}', self.teacher_token)
        body = response.json()
        self.assertEqual(body['count'], 2)
        self.assertEqual(body['returned'], 1)
        self.assertEqual(body['checkedOut'], 1)
        self.assertEqual(body['overdue'], 0)

        response = self.request('get', '/api/checkouts/report?startDate=yesterday', self.teacher_token)
        self.assertEqual(response.status_code, 400)
