"""
API Views for school endpoints
Returns JSON responses for frontend consumption
All endpoints except register/login require a JWT
"""
import logging

from django.contrib.auth import authenticate
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.http import JsonResponse, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from .auth import generate_token
from .decorators import token_required, role_required, check_role, api_error_handler, validation_messages
from .models import (
    CustomUser, SchoolClass, Grade, AttendanceSheet, AttendanceRecord, Announcement, format_class_name
)
from .utils.api import parse_json_body, parse_date_value, iso
from .utils.pdf_generator import generate_report_card_pdf

logger = logging.getLogger(__name__)


def serialize_user(user):
    return {
        'id': user.pk,
        'name': user.name,
        'email': user.email,
        'role': user.role,
        'class': user.class_name,
        'displayName': user.display_name,
        'createdAt': iso(user.created_at),
    }


def serialize_class(school_class):
    return {
        'id': school_class.pk,
        'name': school_class.name,
        'level': school_class.level,
        'section': school_class.section,
        'capacity': school_class.capacity,
        'studentCount': school_class.get_student_count(),
        'teacher': school_class.teacher_id,
        'teacherName': school_class.teacher.display_name if school_class.teacher else '',
        'roomNumber': school_class.room_number,
        'academicYear': school_class.academic_year,
        'notes': school_class.notes,
    }


def serialize_grade(grade):
    return {
        'id': grade.pk,
        'student': grade.student_id,
        'studentName': grade.student.display_name,
        'class': grade.class_name,
        'subject': grade.subject,
        'score': float(grade.score),
        'grade': grade.letter,
        'remarks': grade.remarks,
        'term': grade.term,
        'academicYear': grade.academic_year,
        'teacher': grade.teacher_id,
        'comments': grade.comments,
        'isFinalized': grade.is_finalized,
    }


def serialize_announcement(announcement):
    return {
        'id': announcement.pk,
        'text': announcement.text,
        'createdBy': announcement.created_by,
        'createdAt': iso(announcement.created_at),
    }


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

@csrf_exempt
@api_error_handler
@require_http_methods(["POST"])
def api_register(request):
    """Register a user and return a token"""
    data, error = parse_json_body(request)
    if error:
        return error

    name = str(data.get('name') or '').strip()
    email = str(data.get('email') or '').strip().lower()
    password = str(data.get('password') or '')
    role = str(data.get('role') or 'student').strip().lower()

    errors = []
    if not name:
        errors.append({'field': 'name', 'msg': 'Name is required'})
    try:
        validate_email(email)
    except ValidationError:
        errors.append({'field': 'email', 'msg': 'Invalid email'})
    if len(password) < 6:
        errors.append({'field': 'password', 'msg': 'Password must be at least 6 characters'})
    if role not in dict(CustomUser.ROLE_CHOICES):
        errors.append({'field': 'role', 'msg': 'Role must be student, teacher or admin'})
    if errors:
        return JsonResponse({'errors': errors}, status=400)

    if CustomUser.objects.filter(email__iexact=email).exists():
        return JsonResponse({'success': False, 'message': 'User with this email already exists'}, status=400)

    class_name = str(data.get('class') or '').strip()
    if role == 'student' and not class_name:
        return JsonResponse({'success': False, 'message': 'Class is required for student registration'}, status=400)
    if class_name:
        try:
            class_name = format_class_name(class_name)
        except ValidationError:
            return JsonResponse({
                'success': False,
                'message': "Invalid class format. Please use format 'Grade X' or 'Form X'",
            }, status=400)

    try:
        user = CustomUser.objects.create_user(
            username=email,
            email=email,
            password=password,
            name=name,
            role=role,
            class_name=class_name,
        )
    except IntegrityError:
        return JsonResponse({'success': False, 'message': 'User with this email already exists'}, status=400)

    logger.info("Registered %s user %s", user.role, user.email)
    return JsonResponse({
        'success': True,
        'message': 'User registered successfully',
        'token': generate_token(user),
        'role': user.role,
        'class': user.class_name,
    }, status=201)


@csrf_exempt
@api_error_handler
@require_http_methods(["POST"])
def api_login(request):
    """Exchange email and password for a token"""
    data, error = parse_json_body(request)
    if error:
        return error

    email = str(data.get('email') or '').strip().lower()
    password = str(data.get('password') or '')
    user = CustomUser.objects.filter(email__iexact=email).first() if email else None
    if user is not None:
        user = authenticate(request, username=user.username, password=password)

    if user is None:
        logger.info("Failed login for %s", email or '<empty>')
        return JsonResponse({'msg': 'Invalid email or password'}, status=401)

    return JsonResponse({
        'msg': 'Login successful',
        'token': generate_token(user),
        'role': user.role,
    })


@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET"])
def api_me(request):
    """Current user's profile"""
    return JsonResponse(serialize_user(request.user))


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------

@csrf_exempt
@api_error_handler
@token_required
@role_required('teacher', 'admin')
@require_http_methods(["GET"])
def api_students_list(request):
    """Student users, optionally filtered by class or name/email search"""
    students = CustomUser.objects.filter(role='student', is_active=True)

    class_filter = request.GET.get('class', '').strip()
    if class_filter and class_filter != 'All Classes':
        students = students.filter(class_name__iexact=class_filter)

    search = request.GET.get('search', '').strip()
    if search:
        students = students.filter(Q(name__icontains=search) | Q(email__icontains=search))

    return JsonResponse({
        'count': students.count(),
        'data': [serialize_user(student) for student in students],
    })


# ---------------------------------------------------------------------------
# Classes
# ---------------------------------------------------------------------------

def _apply_class_data(school_class, data):
    """Copy request fields onto a SchoolClass; returns an error response or None"""
    mapping = {
        'name': 'name',
        'level': 'level',
        'section': 'section',
        'roomNumber': 'room_number',
        'academicYear': 'academic_year',
        'notes': 'notes',
    }
    for key, field in mapping.items():
        if key in data:
            setattr(school_class, field, str(data[key] or '').strip())

    if 'capacity' in data:
        try:
            school_class.capacity = int(data['capacity'])
        except (TypeError, ValueError):
            return JsonResponse({'success': False, 'error': 'Capacity must be a whole number'}, status=400)

    if 'teacher' in data:
        teacher_id = data['teacher']
        if teacher_id in (None, ''):
            school_class.teacher = None
        else:
            try:
                school_class.teacher = CustomUser.objects.get(pk=teacher_id, role='teacher')
            except (CustomUser.DoesNotExist, ValueError, TypeError):
                return JsonResponse({'success': False, 'error': 'Teacher not found'}, status=400)
    return None


@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET", "POST"])
def api_classes_list(request):
    """List classes or create one (admin)"""
    if request.method == 'GET':
        classes = SchoolClass.objects.select_related('teacher')
        academic_year = request.GET.get('academicYear', '').strip()
        if academic_year:
            classes = classes.filter(academic_year=academic_year)
        level = request.GET.get('level', '').strip()
        if level:
            classes = classes.filter(level=level)
        return JsonResponse([serialize_class(c) for c in classes], safe=False)

    denied = check_role(request, 'admin')
    if denied:
        return denied

    data, error = parse_json_body(request)
    if error:
        return error

    school_class = SchoolClass()
    error = _apply_class_data(school_class, data)
    if error:
        return error

    try:
        school_class.full_clean()
    except ValidationError as e:
        return JsonResponse({'success': False, 'error': 'Validation failed', 'details': validation_messages(e)}, status=400)
    school_class.save()

    logger.info("Class %s (%s) created by %s", school_class.name, school_class.academic_year, request.user.email)
    return JsonResponse({'success': True, 'class': serialize_class(school_class)}, status=201)


@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET", "PUT", "DELETE"])
def api_class_detail(request, pk):
    try:
        school_class = SchoolClass.objects.select_related('teacher').get(pk=pk)
    except SchoolClass.DoesNotExist:
        return JsonResponse({'error': 'Class not found'}, status=404)

    if request.method == 'GET':
        return JsonResponse(serialize_class(school_class))

    denied = check_role(request, 'admin')
    if denied:
        return denied

    if request.method == 'DELETE':
        school_class.delete()
        return JsonResponse({'msg': 'Class deleted successfully'})

    data, error = parse_json_body(request)
    if error:
        return error

    error = _apply_class_data(school_class, data)
    if error:
        return error

    try:
        school_class.full_clean()
    except ValidationError as e:
        return JsonResponse({'success': False, 'error': 'Validation failed', 'details': validation_messages(e)}, status=400)
    school_class.save()
    return JsonResponse({'success': True, 'class': serialize_class(school_class)})


# ---------------------------------------------------------------------------
# Grades
# ---------------------------------------------------------------------------

@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET", "POST"])
def api_grades_list(request):
    """
    GET: students see their own grades; teachers and admins see all grades,
    filterable by student, class, term and academicYear.
    POST: teachers and admins record a grade.
    """
    if request.method == 'GET':
        grades = Grade.objects.select_related('student')
        if request.user.is_student():
            grades = grades.filter(student=request.user)
        else:
            student_id = request.GET.get('student', '').strip()
            if student_id:
                grades = grades.filter(student_id=student_id) if student_id.isdigit() else grades.none()
            class_filter = request.GET.get('class', '').strip()
            if class_filter:
                grades = grades.filter(class_name__iexact=class_filter)

        term = request.GET.get('term', '').strip()
        if term:
            grades = grades.filter(term=term)
        academic_year = request.GET.get('academicYear', '').strip()
        if academic_year:
            grades = grades.filter(academic_year=academic_year)

        return JsonResponse([serialize_grade(g) for g in grades], safe=False)

    denied = check_role(request, 'teacher', 'admin')
    if denied:
        return denied

    data, error = parse_json_body(request)
    if error:
        return error

    try:
        student = CustomUser.objects.get(pk=data.get('student'), role='student')
    except (CustomUser.DoesNotExist, ValueError, TypeError):
        return JsonResponse({'success': False, 'error': 'Student not found'}, status=400)

    grade = Grade(
        student=student,
        class_name=str(data.get('class') or student.class_name or ''),
        subject=str(data.get('subject') or '').strip(),
        score=data.get('score'),
        term=str(data.get('term') or ''),
        academic_year=str(data.get('academicYear') or ''),
        teacher=request.user,
        comments=str(data.get('comments') or ''),
    )
    try:
        grade.full_clean()
    except ValidationError as e:
        return JsonResponse({'success': False, 'error': 'Validation failed', 'details': validation_messages(e)}, status=400)
    grade.save()

    return JsonResponse({'msg': 'Grade added successfully!', 'grade': serialize_grade(grade)}, status=201)


@csrf_exempt
@api_error_handler
@token_required
@role_required('teacher', 'admin')
@require_http_methods(["PUT", "DELETE"])
def api_grade_detail(request, pk):
    try:
        grade = Grade.objects.select_related('student').get(pk=pk)
    except Grade.DoesNotExist:
        return JsonResponse({'msg': 'Grade not found'}, status=404)

    if request.method == 'DELETE':
        grade.delete()
        return JsonResponse({'msg': 'Grade deleted successfully'})

    data, error = parse_json_body(request)
    if error:
        return error

    if grade.is_finalized:
        return JsonResponse({'success': False, 'msg': 'Finalized grades cannot be changed'}, status=400)

    if data.get('score') not in (None, ''):
        grade.score = data['score']
    if 'comments' in data:
        grade.comments = str(data['comments'] or '')
    if 'isFinalized' in data:
        grade.is_finalized = bool(data['isFinalized'])

    try:
        grade.full_clean()
    except ValidationError as e:
        return JsonResponse({'success': False, 'error': 'Validation failed', 'details': validation_messages(e)}, status=400)
    grade.save()
    return JsonResponse({'msg': 'Grade updated successfully', 'grade': serialize_grade(grade)})


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------

def _serialize_sheet(class_name, day, records, sheet=None):
    return {
        'id': sheet.pk if sheet else None,
        'class': class_name,
        'date': iso(day),
        'saved': sheet is not None,
        'records': records,
    }


@csrf_exempt
@api_error_handler
@token_required
@role_required('teacher', 'admin')
@require_http_methods(["GET", "POST"])
def api_attendance(request):
    """
    GET ?class=&date= : the caller's sheet, or every student in the class marked present.
    POST {class, date, records: [{studentId, status, remarks}]} : create or replace the sheet.
    """
    if request.method == 'GET':
        class_name = request.GET.get('class', '').strip()
        if not class_name:
            return JsonResponse({'message': 'Class is required'}, status=400)
        try:
            day = parse_date_value(request.GET.get('date'))
        except ValueError as e:
            return JsonResponse({'message': str(e)}, status=400)
        if day is None:
            return JsonResponse({'message': 'Date is required'}, status=400)

        sheet = AttendanceSheet.objects.filter(
            class_name__iexact=class_name, date=day, created_by=request.user
        ).first()
        if sheet:
            records = [{
                'studentId': record.student_id,
                'studentName': record.student.display_name,
                'status': record.status,
                'remarks': record.remarks,
            } for record in sheet.records.select_related('student')]
            return JsonResponse(_serialize_sheet(sheet.class_name, sheet.date, records, sheet))

        students = CustomUser.objects.filter(role='student', is_active=True, class_name__iexact=class_name)
        records = [{
            'studentId': student.pk,
            'studentName': student.display_name,
            'status': 'present',
            'remarks': '',
        } for student in students]
        return JsonResponse(_serialize_sheet(class_name, day, records))

    data, error = parse_json_body(request)
    if error:
        return error

    class_name = str(data.get('class') or '').strip()
    records = data.get('records')
    try:
        day = parse_date_value(data.get('date'))
    except ValueError as e:
        return JsonResponse({'message': str(e)}, status=400)
    if not class_name or day is None or not isinstance(records, list):
        return JsonResponse({'message': 'Missing required fields'}, status=400)
    try:
        class_name = format_class_name(class_name)
    except ValidationError as e:
        return JsonResponse({'message': e.messages[0]}, status=400)

    valid_statuses = dict(AttendanceRecord.STATUS_CHOICES)
    cleaned = {}
    for record in records:
        if not isinstance(record, dict):
            return JsonResponse({'message': 'Each record must be an object'}, status=400)
        status = str(record.get('status') or 'present').strip().lower()
        if status not in valid_statuses:
            return JsonResponse({'message': f"Invalid attendance status '{record.get('status')}'"}, status=400)
        cleaned[str(record.get('studentId'))] = (status, str(record.get('remarks') or ''))

    students = {
        str(s.pk): s for s in CustomUser.objects.filter(
            role='student', pk__in=[k for k in cleaned if k.isdigit()]
        )
    }
    unknown = [student_id for student_id in cleaned if student_id not in students]
    if unknown:
        return JsonResponse({'message': 'Unknown students in records', 'students': unknown}, status=400)

    with transaction.atomic():
        sheet, created = AttendanceSheet.objects.get_or_create(
            class_name=class_name, date=day, created_by=request.user
        )
        sheet.records.all().delete()
        AttendanceRecord.objects.bulk_create([
            AttendanceRecord(sheet=sheet, student=students[student_id], status=status, remarks=remarks)
            for student_id, (status, remarks) in cleaned.items()
        ])
        sheet.save(update_fields=['updated_at'])

    logger.info("Attendance for %s on %s saved by %s (%d records)", class_name, day, request.user.email, len(cleaned))
    saved = [{
        'studentId': record.student_id,
        'studentName': record.student.display_name,
        'status': record.status,
        'remarks': record.remarks,
    } for record in sheet.records.select_related('student')]
    return JsonResponse(_serialize_sheet(sheet.class_name, sheet.date, saved, sheet), status=201 if created else 200)


# ---------------------------------------------------------------------------
# Announcements
# ---------------------------------------------------------------------------

@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET", "POST"])
def api_announcements(request):
    if request.method == 'GET':
        return JsonResponse([serialize_announcement(a) for a in Announcement.objects.all()], safe=False)

    denied = check_role(request, 'teacher', 'admin')
    if denied:
        return denied

    data, error = parse_json_body(request)
    if error:
        return error

    text = str(data.get('text') or '').strip()
    if not text:
        return JsonResponse({'msg': 'Announcement text is required'}, status=400)

    announcement = Announcement.objects.create(text=text, created_by=request.user.display_name)
    return JsonResponse(serialize_announcement(announcement), status=201)


@csrf_exempt
@api_error_handler
@token_required
@role_required('teacher', 'admin')
@require_http_methods(["DELETE"])
def api_announcement_detail(request, pk):
    deleted, _ = Announcement.objects.filter(pk=pk).delete()
    if not deleted:
        return JsonResponse({'msg': 'Announcement not found'}, status=404)
    return JsonResponse({'msg': 'Announcement deleted'})


# ---------------------------------------------------------------------------
# Report cards
# ---------------------------------------------------------------------------

@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET"])
def api_report_card(request, student_id):
    """Report card PDF for a student, optionally limited to a term and academic year"""
    if request.user.is_student() and request.user.pk != student_id:
        return JsonResponse({'error': 'You can only view your own report card'}, status=403)

    try:
        student = CustomUser.objects.get(pk=student_id, role='student')
    except CustomUser.DoesNotExist:
        return JsonResponse({'error': 'Student not found'}, status=404)

    term = request.GET.get('term', '').strip() or None
    academic_year = request.GET.get('academicYear', '').strip() or None

    grades = Grade.objects.filter(student=student)
    if term:
        grades = grades.filter(term=term)
    if academic_year:
        grades = grades.filter(academic_year=academic_year)
    if not grades.exists():
        return JsonResponse({'error': 'No grades found for this period'}, status=404)

    buffer = generate_report_card_pdf(student, grades, term=term, academic_year=academic_year)
    response = HttpResponse(buffer.getvalue(), content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="report_card_{student.pk}.pdf"'
    return response
