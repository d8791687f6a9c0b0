import json
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import jwt
from django.core.exceptions import ValidationError
from django.test import TestCase

from .auth import generate_token, get_jwt_secret
from .models import CustomUser, SchoolClass, Grade, AttendanceSheet, Announcement, format_class_name, grade_letter


def make_user(email, role='student', class_name='Grade 4', name=None, **extra):
    return CustomUser.objects.create_user(
        username=email,
        email=email,
        password='testpass123',
        name=name if name is not None else email.split('@')[0].title(),
        role=role,
        class_name=class_name if role == 'student' else '',
        **extra
    )


class APITestMixin:
    def request(self, method, url, token=None, data=None, **headers):
        if token:
            headers.setdefault('HTTP_X_AUTH_TOKEN', token)
        if data is not None:
            headers['data'] = json.dumps(data)
            headers['content_type'] = 'application/json'
        return getattr(self.client, method)(url, **headers)


class ModelHelpersTestCase(TestCase):
    def test_grade_letters(self):
        cases = [
            (95, 'A'), (80, 'A'), (79.99, 'A-'), (70, 'A-'), (65, 'B+'), (50, 'B'),
            (45, 'B-'), (30, 'C+'), (20, 'C'), (19.5, 'E'), (0, 'E'),
        ]
        for score, letter in cases:
            self.assertEqual(grade_letter(score), letter, score)

    def test_format_class_name(self):
        self.assertEqual(format_class_name('grade 4'), 'Grade 4')
        self.assertEqual(format_class_name('FORM  2'), 'Form 2')
        self.assertEqual(format_class_name('pp1'), 'PP1')
        for bad in ('', 'Form 5', 'Class 3', 'Grade'):
            with self.assertRaises(ValidationError):
                format_class_name(bad)

    def test_display_name_fallback(self):
        user = make_user('anon@school.test', name='')
        self.assertEqual(user.display_name, 'anon@school.test')
        user.email = ''
        self.assertEqual(user.display_name, f"Student {str(user.pk)[:6]}...")

    def test_superuser_counts_as_admin(self):
        user = make_user('root@school.test', role='teacher', is_superuser=True)
        self.assertTrue(user.has_role('admin'))
        self.assertTrue(user.has_role('TEACHER'))
        self.assertFalse(user.has_role('student'))


class AuthAPITestCase(APITestMixin, TestCase):
    def test_register_student(self):
        response = self.request('post', '/api/auth/register', data={
            'name': 'Jane Doe', 'email': 'Jane@School.test', 'password': 'secret1', 'class': 'grade 4',
        })
        self.assertEqual(response.status_code, 201, response.content)
        body = response.json()
        self.assertEqual(body['role'], 'student')
        self.assertEqual(body['class'], 'Grade 4')
        self.assertTrue(body['token'])

        user = CustomUser.objects.get(email='jane@school.test')
        self.assertEqual(user.class_name, 'Grade 4')
        self.assertTrue(user.check_password('secret1'))

    def test_register_validation(self):
        response = self.request('post', '/api/auth/register', data={
            'name': '', 'email': 'not-an-email', 'password': '123',
        })
        self.assertEqual(response.status_code, 400)
        fields = {error['field'] for error in response.json()['errors']}
        self.assertEqual(fields, {'name', 'email', 'password'})

    def test_register_student_requires_valid_class(self):
        data = {'name': 'Sam', 'email': 'sam@school.test', 'password': 'secret1'}
        response = self.request('post', '/api/auth/register', data=data)
        self.assertEqual(response.status_code, 400)

        response = self.request('post', '/api/auth/register', data=dict(data, **{'class': 'Year 9'}))
        self.assertEqual(response.status_code, 400)
        self.assertFalse(CustomUser.objects.filter(email='sam@school.test').exists())

    def test_register_duplicate_email(self):
        make_user('taken@school.test')
        response = self.request('post', '/api/auth/register', data={
            'name': 'Other', 'email': 'TAKEN@school.test', 'password': 'secret1', 'role': 'teacher',
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'User with this email already exists')

    def test_register_invalid_json(self):
        response = self.client.post('/api/auth/register', data='{oops', content_type='application/json')
        self.assertEqual(response.status_code, 400)

    def test_login(self):
        make_user('teacher@school.test', role='teacher')
        response = self.request('post', '/api/auth/login', data={
            'email': 'teacher@school.test', 'password': 'testpass123',
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['role'], 'teacher')

        token = response.json()['token']
        response = self.request('get', '/api/auth/me', HTTP_AUTHORIZATION=f'Bearer {token}')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['email'], 'teacher@school.test')

    def test_login_wrong_password(self):
        make_user('teacher@school.test', role='teacher')
        response = self.request('post', '/api/auth/login', data={
            'email': 'teacher@school.test', 'password': 'wrong-password',
        })
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['msg'], 'Invalid email or password')

        response = self.request('post', '/api/auth/login', data={'email': 'nobody@school.test', 'password': 'x'})
        self.assertEqual(response.status_code, 401)


class TokenTestCase(APITestMixin, TestCase):
    def setUp(self):
        self.user = make_user('jane@school.test', name='Jane Doe')

    def encode(self, payload, hours=1):
        payload = dict(payload, exp=datetime.now(dt_timezone.utc) + timedelta(hours=hours))
        return jwt.encode(payload, get_jwt_secret(), algorithm='HS256')

    def test_header_variants(self):
        token = generate_token(self.user)
        for headers in (
            {'HTTP_X_AUTH_TOKEN': token},
            {'HTTP_AUTHORIZATION': f'Bearer {token}'},
            {'HTTP_AUTHORIZATION': token},
        ):
            response = self.request('get', '/api/auth/me', **headers)
            self.assertEqual(response.status_code, 200, headers)
            self.assertEqual(response.json()['name'], 'Jane Doe')

    def test_payload_shapes(self):
        for payload in (
            {'id': self.user.pk, 'role': 'student'},
            {'user': {'id': self.user.pk, 'role': 'student'}},
            {'userId': self.user.pk, 'role': 'student'},
        ):
            response = self.request('get', '/api/auth/me', token=self.encode(payload))
            self.assertEqual(response.status_code, 200, payload)

    def test_payload_without_id(self):
        response = self.request('get', '/api/auth/me', token=self.encode({'role': 'admin'}))
        self.assertEqual(response.status_code, 401)

    def test_expired_token(self):
        token = generate_token(self.user, expires_in_hours=-1)
        response = self.request('get', '/api/auth/me', token=token)
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['message'], 'Token has expired. Please log in again.')

    def test_wrong_secret(self):
        token = jwt.encode({'id': self.user.pk}, 'another-secret', algorithm='HS256')
        response = self.request('get', '/api/auth/me', token=token)
        self.assertEqual(response.status_code, 401)

    def test_inactive_user(self):
        token = generate_token(self.user)
        self.user.is_active = False
        self.user.save()
        response = self.request('get', '/api/auth/me', token=token)
        self.assertEqual(response.status_code, 401)

    def test_role_comes_from_database(self):
        forged = self.encode({'id': self.user.pk, 'role': 'admin'})
        response = self.request('get', '/api/students', token=forged)
        self.assertEqual(response.status_code, 403)


class SchoolAPITestCase(APITestMixin, TestCase):
    def setUp(self):
        self.admin = make_user('admin@school.test', role='admin')
        self.teacher = make_user('teacher@school.test', role='teacher', name='Mr Teacher')
        self.student = make_user('jane@school.test', name='Jane Doe')
        self.classmate = make_user('john@school.test', name='John Roe')
        self.other = make_user('amy@school.test', name='Amy Poe', class_name='Form 2')
        self.admin_token = generate_token(self.admin)
        self.teacher_token = generate_token(self.teacher)
        self.student_token = generate_token(self.student)

    def test_students_list(self):
        response = self.request('get', '/api/students?class=Grade%204', self.teacher_token)
        self.assertEqual(response.status_code, 200)
        names = [s['name'] for s in response.json()['data']]
        self.assertEqual(names, ['Jane Doe', 'John Roe'])

        response = self.request('get', '/api/students?search=amy', self.admin_token)
        self.assertEqual(response.json()['count'], 1)

        response = self.request('get', '/api/students', self.student_token)
        self.assertEqual(response.status_code, 403)

    def test_classes(self):
        payload = {
            'name': 'Grade 4', 'level': 'Primary', 'section': 'East', 'capacity': 40,
            'academicYear': '2024-2025', 'teacher': self.teacher.pk,
        }
        response = self.request('post', '/api/classes', self.admin_token, payload)
        self.assertEqual(response.status_code, 201, response.content)
        created = response.json()['class']
        self.assertEqual(created['teacherName'], 'Mr Teacher')
        self.assertEqual(created['studentCount'], 2)

        response = self.request('post', '/api/classes', self.admin_token, payload)
        self.assertEqual(response.status_code, 400)

        response = self.request('post', '/api/classes', self.teacher_token, dict(payload, name='Grade 5'))
        self.assertEqual(response.status_code, 403)

        response = self.request('get', '/api/classes', self.student_token)
        self.assertEqual(len(response.json()), 1)

        url = f"/api/classes/{created['id']}"
        response = self.request('put', url, self.admin_token, {'capacity': 45, 'roomNumber': 'B12'})
        self.assertEqual(response.json()['class']['capacity'], 45)
        self.assertEqual(response.json()['class']['roomNumber'], 'B12')

        response = self.request('put', url, self.admin_token, {'level': 'University'})
        self.assertEqual(response.status_code, 400)

        response = self.request('delete', url, self.admin_token)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(SchoolClass.objects.exists())

        response = self.request('get', url, self.admin_token)
        self.assertEqual(response.status_code, 404)

    def add_grade(self, student=None, **extra):
        payload = {
            'student': (student or self.student).pk, 'subject': 'Mathematics', 'score': 85,
            'term': 'Term 1', 'academicYear': '2024-2025',
        }
        payload.update(extra)
        return self.request('post', '/api/grades', self.teacher_token, payload)

    def test_grades(self):
        response = self.add_grade()
        self.assertEqual(response.status_code, 201, response.content)
        grade = response.json()['grade']
        self.assertEqual(grade['grade'], 'A')
        self.assertEqual(grade['class'], 'Grade 4')

        response = self.add_grade()
        self.assertEqual(response.status_code, 400)

        response = self.add_grade(subject='English', score=120)
        self.assertEqual(response.status_code, 400)

        response = self.add_grade(subject='English', academicYear='2024/2025')
        self.assertEqual(response.status_code, 400)

        self.add_grade(student=self.classmate, subject='English', score=55)

        response = self.request('get', '/api/grades', self.student_token)
        self.assertEqual([g['studentName'] for g in response.json()], ['Jane Doe'])

        response = self.request('get', f'/api/grades?student={self.classmate.pk}', self.teacher_token)
        self.assertEqual([g['grade'] for g in response.json()], ['B'])

        response = self.request('post', '/api/grades', self.student_token, {'student': self.student.pk})
        self.assertEqual(response.status_code, 403)

    def test_finalized_grade_cannot_change(self):
        grade_id = self.add_grade().json()['grade']['id']
        url = f'/api/grades/{grade_id}'

        response = self.request('put', url, self.teacher_token, {'score': 65, 'isFinalized': True})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['grade']['grade'], 'B+')

        response = self.request('put', url, self.teacher_token, {'score': 90})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Grade.objects.get(pk=grade_id).score, Decimal('65.00'))

        response = self.request('delete', url, self.admin_token)
        self.assertEqual(response.status_code, 200)
        response = self.request('delete', url, self.admin_token)
        self.assertEqual(response.status_code, 404)

    def test_attendance_default_sheet(self):
        response = self.request('get', '/api/attendance?class=Grade%204&date=2025-01-15', self.teacher_token)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body['saved'])
        self.assertEqual(len(body['records']), 2)
        self.assertTrue(all(r['status'] == 'present' for r in body['records']))

        response = self.request('get', '/api/attendance?date=2025-01-15', self.teacher_token)
        self.assertEqual(response.status_code, 400)
        response = self.request('get', '/api/attendance?class=Grade%204&date=15/01/2025', self.teacher_token)
        self.assertEqual(response.status_code, 400)

    def test_attendance_class_name_case_shares_one_sheet(self):
        payload = {
            'class': 'grade 4', 'date': '2025-01-15',
            'records': [{'studentId': self.student.pk, 'status': 'absent'}],
        }
        response = self.request('post', '/api/attendance', self.teacher_token, payload)
        self.assertEqual(response.status_code, 201, response.content)
        self.assertEqual(response.json()['class'], 'Grade 4')

        payload['class'] = 'GRADE 4'
        payload['records'] = [{'studentId': self.student.pk, 'status': 'present'}]
        response = self.request('post', '/api/attendance', self.teacher_token, payload)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(AttendanceSheet.objects.count(), 1)
        self.assertEqual(AttendanceSheet.objects.get().class_name, 'Grade 4')

        response = self.request('get', '/api/attendance?class=grade%204&date=2025-01-15', self.teacher_token)
        self.assertTrue(response.json()['saved'])
        self.assertEqual(response.json()['records'][0]['status'], 'present')

        payload['class'] = 'Library Club'
        response = self.request('post', '/api/attendance', self.teacher_token, payload)
        self.assertEqual(response.status_code, 400)

    def test_attendance_upsert(self):
        payload = {
            'class': 'Grade 4', 'date': '2025-01-15',
            'records': [
                {'studentId': self.student.pk, 'status': 'present'},
                {'studentId': self.classmate.pk, 'status': 'absent', 'remarks': 'Sick'},
            ],
        }
        response = self.request('post', '/api/attendance', self.teacher_token, payload)
        self.assertEqual(response.status_code, 201, response.content)

        payload['records'] = [{'studentId': self.classmate.pk, 'status': 'late'}]
        response = self.request('post', '/api/attendance', self.teacher_token, payload)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(AttendanceSheet.objects.count(), 1)

        response = self.request('get', '/api/attendance?class=Grade%204&date=2025-01-15', self.teacher_token)
        body = response.json()
        self.assertTrue(body['saved'])
        self.assertEqual([(r['studentName'], r['status']) for r in body['records']], [('John Roe', 'late')])

        payload['records'] = [{'studentId': 99999, 'status': 'present'}]
        response = self.request('post', '/api/attendance', self.teacher_token, payload)
        self.assertEqual(response.status_code, 400)

        payload['records'] = [{'studentId': self.student.pk, 'status': 'sleeping'}]
        response = self.request('post', '/api/attendance', self.teacher_token, payload)
        self.assertEqual(response.status_code, 400)

        response = self.request('post', '/api/attendance', self.student_token, payload)
        self.assertEqual(response.status_code, 403)

    def test_announcements(self):
        response = self.request('post', '/api/announcements', self.teacher_token, {'text': 'Sports day on Friday'})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['createdBy'], 'Mr Teacher')
        announcement_id = response.json()['id']

        response = self.request('post', '/api/announcements', self.teacher_token, {'text': '   '})
        self.assertEqual(response.status_code, 400)

        response = self.request('post', '/api/announcements', self.student_token, {'text': 'Hello'})
        self.assertEqual(response.status_code, 403)

        response = self.request('get', '/api/announcements', self.student_token)
        self.assertEqual([a['text'] for a in response.json()], ['Sports day on Friday'])

        response = self.request('delete', f'/api/announcements/{announcement_id}', self.admin_token)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Announcement.objects.exists())

        response = self.request('delete', f'/api/announcements/{announcement_id}', self.admin_token)
        self.assertEqual(response.status_code, 404)

    def test_report_card(self):
        self.add_grade(comments='Excellent <work> & effort')
        self.add_grade(subject='English', score=48)

        response = self.request('get', f'/api/report-cards/{self.student.pk}?term=Term%201', self.teacher_token)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))

        response = self.request('get', f'/api/report-cards/{self.student.pk}', self.student_token)
        self.assertEqual(response.status_code, 200)

        response = self.request('get', f'/api/report-cards/{self.classmate.pk}', self.student_token)
        self.assertEqual(response.status_code, 403)

        response = self.request('get', f'/api/report-cards/{self.classmate.pk}', self.teacher_token)
        self.assertEqual(response.status_code, 404)

        response = self.request('get', f'/api/report-cards/{self.student.pk}?term=Term%202', self.teacher_token)
        self.assertEqual(response.status_code, 404)

        response = self.request('get', '/api/report-cards/99999', self.teacher_token)
        self.assertEqual(response.status_code, 404)
