"""
Library API views: book catalogue and checkouts
"""
import logging

from django.db import transaction
from django.db.models import Q, Sum
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from education.decorators import token_required, role_required, check_role, api_error_handler
from education.models import CustomUser
from education.utils.api import parse_json_body, parse_date_value, iso
from .models import Book, BookCheckout, CheckoutRejected

logger = logging.getLogger(__name__)


def serialize_book(book):
    return {
        'id': book.pk,
        'title': book.title,
        'author': book.author,
        'year': book.year,
        'genre': book.genre,
        'className': book.class_name,
        'copies': book.copies,
        'available': book.available,
        'status': 'available' if book.available > 0 else 'unavailable',
    }


def serialize_checkout(checkout, today=None):
    today = today or timezone.localdate()
    student = checkout.student
    return {
        'id': checkout.pk,
        'book': {'id': checkout.book_id, 'title': checkout.book.title, 'author': checkout.book.author},
        'student': {
            'id': student.pk,
            'name': student.name,
            'email': student.email,
            'class': student.class_name,
            'displayName': student.display_name,
        },
        'checkedOutAt': iso(checkout.checked_out_at),
        'dueDate': iso(checkout.due_date),
        'returnedAt': iso(checkout.returned_at),
        'status': checkout.derive_status(today),
        'daysOverdue': checkout.days_overdue(today),
        'fine': float(checkout.fine if checkout.returned_at else checkout.accrued_fine(today)),
        'renewals': checkout.renewals,
        'createdBy': checkout.created_by_id,
    }


def _checkout_queryset():
    return BookCheckout.objects.select_related('book', 'student')


def _parse_copies(value, default):
    if value in (None, ''):
        return default
    try:
        copies = int(value)
    except (TypeError, ValueError):
        raise ValueError('Copies must be a whole number')
    if copies < 1:
        raise ValueError('A book needs at least one copy')
    return copies


def _parse_year(value):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError('Year must be a whole number')


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------

@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET", "POST"])
def api_books(request):
    """List books (search, genre, author, class filters) or add a book"""
    if request.method == 'GET':
        books = Book.objects.all()
        search = request.GET.get('search', '').strip()
        if search:
            books = books.filter(
                Q(title__icontains=search) | Q(author__icontains=search) | Q(genre__icontains=search)
            )
        genre = request.GET.get('genre', '').strip()
        if genre:
            books = books.filter(genre__iexact=genre)
        author = request.GET.get('author', '').strip()
        if author:
            books = books.filter(author__icontains=author)
        class_filter = request.GET.get('class', '').strip()
        if class_filter and class_filter not in ('All', 'All Classes'):
            books = books.filter(class_name__iexact=class_filter)
        return JsonResponse([serialize_book(b) for b in books], safe=False)

    denied = check_role(request, 'teacher', 'admin')
    if denied:
        return denied

    data, error = parse_json_body(request)
    if error:
        return error

    title = str(data.get('title') or '').strip()
    author = str(data.get('author') or '').strip()
    class_name = str(data.get('className') or '').strip()
    if not title or not author or not class_name:
        return JsonResponse({'error': 'Title, author, and class are required.'}, status=400)

    try:
        copies = _parse_copies(data.get('copies'), default=1)
        year = _parse_year(data.get('year'))
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)

    book = Book(
        title=title,
        author=author,
        year=year if year is not None else timezone.localdate().year,
        genre=str(data.get('genre') or '').strip() or 'General',
        class_name=class_name,
        copies=copies,
        available=copies,
    )
    book.full_clean()
    book.save()
    logger.info("Book %s (%s) added by %s", book.pk, book.title, request.user.email)
    return JsonResponse({'msg': 'Book added!', 'book': serialize_book(book)}, status=201)


@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET", "PUT", "DELETE"])
def api_book_detail(request, pk):
    if request.method == 'GET':
        try:
            book = Book.objects.get(pk=pk)
        except Book.DoesNotExist:
            return JsonResponse({'error': 'Book not found'}, status=404)
        return JsonResponse(serialize_book(book))

    denied = check_role(request, 'teacher', 'admin')
    if denied:
        return denied

    if request.method == 'DELETE':
        try:
            book = Book.objects.get(pk=pk)
        except Book.DoesNotExist:
            return JsonResponse({'error': 'Book not found'}, status=404)
        active = book.open_checkouts().count()
        if active:
            return JsonResponse({
                'error': 'Cannot delete book with active checkouts',
                'activeCheckouts': active,
            }, status=400)
        book.delete()
        logger.info("Book %s deleted by %s", pk, request.user.email)
        return JsonResponse({'message': 'Book deleted successfully'})

    data, error = parse_json_body(request)
    if error:
        return error

    title = str(data.get('title') or '').strip()
    author = str(data.get('author') or '').strip()
    class_name = str(data.get('className') or '').strip()
    if not title or not author or not class_name:
        return JsonResponse({'error': 'Title, author, and class are required.'}, status=400)

    with transaction.atomic():
        try:
            book = Book.objects.select_for_update().get(pk=pk)
        except Book.DoesNotExist:
            return JsonResponse({'error': 'Book not found'}, status=404)

        try:
            copies = _parse_copies(data.get('copies'), default=book.copies)
            if 'year' in data:
                book.year = _parse_year(data.get('year'))
        except ValueError as e:
            return JsonResponse({'error': str(e)}, status=400)

        out = book.open_checkouts().count()
        if copies < out:
            return JsonResponse({
                'error': f'Copies cannot be fewer than the {out} currently checked out'
            }, status=400)

        book.title = title
        book.author = author
        book.class_name = class_name
        if data.get('genre'):
            book.genre = str(data['genre']).strip()
        book.copies = copies
        book.available = copies - out

        book.full_clean()
        book.save()

    return JsonResponse({'msg': 'Book updated!', 'book': serialize_book(book)})


@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET"])
def api_my_books(request):
    """Books the current user has not returned yet, with fines accrued so far"""
    checkouts = _checkout_queryset().filter(student=request.user, returned_at__isnull=True).order_by('due_date')
    today = timezone.localdate()
    return JsonResponse([serialize_checkout(c, today) for c in checkouts], safe=False)


# ---------------------------------------------------------------------------
# Checkouts
# ---------------------------------------------------------------------------

@csrf_exempt
@api_error_handler
@token_required
@role_required('teacher', 'admin')
@require_http_methods(["POST"])
def api_checkout_create(request):
    """Check a book out to a student"""
    data, error = parse_json_body(request)
    if error:
        return error

    errors = []
    if not data.get('bookId'):
        errors.append({'field': 'bookId', 'msg': 'Book ID is required'})
    if not data.get('studentId'):
        errors.append({'field': 'studentId', 'msg': 'Student ID is required'})
    try:
        due_date = parse_date_value(data.get('dueDate'))
    except ValueError:
        due_date = None
    if due_date is None:
        errors.append({'field': 'dueDate', 'msg': 'Due date is required'})
    elif due_date < timezone.localdate():
        errors.append({'field': 'dueDate', 'msg': 'Due date cannot be in the past'})
    if errors:
        return JsonResponse({'errors': errors}, status=400)

    try:
        student = CustomUser.objects.get(pk=data['studentId'], role='student')
    except (CustomUser.DoesNotExist, ValueError, TypeError):
        return JsonResponse({'msg': 'Student not found'}, status=404)

    try:
        checkout = BookCheckout.check_out(data['bookId'], student, due_date, created_by=request.user)
    except (Book.DoesNotExist, ValueError, TypeError):
        return JsonResponse({'msg': 'Book not found'}, status=404)
    except CheckoutRejected as e:
        body = {'msg': str(e)}
        if e.details:
            body['overdueCheckouts'] = e.details
        return JsonResponse(body, status=400)

    checkout = _checkout_queryset().get(pk=checkout.pk)
    return JsonResponse(serialize_checkout(checkout), status=201)


@csrf_exempt
@api_error_handler
@token_required
@role_required('teacher', 'admin')
@require_http_methods(["PUT"])
def api_checkout_return(request, pk):
    try:
        checkout = BookCheckout.return_copy(pk)
    except BookCheckout.DoesNotExist:
        return JsonResponse({'msg': 'Checkout record not found'}, status=404)
    except CheckoutRejected as e:
        return JsonResponse({'msg': str(e)}, status=400)

    checkout = _checkout_queryset().get(pk=checkout.pk)
    return JsonResponse({
        'message': 'Book returned successfully',
        'checkout': serialize_checkout(checkout),
        'availableCopies': checkout.book.available,
    })


@csrf_exempt
@api_error_handler
@token_required
@role_required('teacher', 'admin')
@require_http_methods(["PUT"])
def api_checkout_renew(request, pk):
    try:
        checkout = BookCheckout.renew(pk)
    except BookCheckout.DoesNotExist:
        return JsonResponse({'msg': 'Checkout record not found'}, status=404)
    except CheckoutRejected as e:
        return JsonResponse({'msg': str(e)}, status=400)

    checkout = _checkout_queryset().get(pk=checkout.pk)
    return JsonResponse(serialize_checkout(checkout))


@csrf_exempt
@api_error_handler
@token_required
@role_required('teacher', 'admin')
@require_http_methods(["GET"])
def api_checkouts_current(request):
    """All books out on loan, soonest due first"""
    checkouts = _checkout_queryset().filter(returned_at__isnull=True).order_by('due_date', 'id')
    today = timezone.localdate()
    return JsonResponse([serialize_checkout(c, today) for c in checkouts], safe=False)


@csrf_exempt
@api_error_handler
@token_required
@role_required('teacher', 'admin')
@require_http_methods(["GET"])
def api_checkouts_overdue(request):
    today = timezone.localdate()
    checkouts = _checkout_queryset().filter(
        returned_at__isnull=True, due_date__lt=today
    ).order_by('due_date', 'id')
    return JsonResponse([serialize_checkout(c, today) for c in checkouts], safe=False)


@csrf_exempt
@api_error_handler
@token_required
@role_required('teacher', 'admin')
@require_http_methods(["GET"])
def api_checkouts_report(request):
    """Checkouts in a date range with counts and fines"""
    checkouts = _checkout_queryset()
    try:
        start = parse_date_value(request.GET.get('startDate'))
        end = parse_date_value(request.GET.get('endDate'))
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)
    if start:
        checkouts = checkouts.filter(checked_out_at__date__gte=start)
    if end:
        checkouts = checkouts.filter(checked_out_at__date__lte=end)

    today = timezone.localdate()
    rows = [serialize_checkout(c, today) for c in checkouts]
    collected = checkouts.filter(returned_at__isnull=False).aggregate(total=Sum('fine'))['total']
    return JsonResponse({
        'count': len(rows),
        'returned': sum(1 for r in rows if r['status'] == 'returned'),
        'checkedOut': sum(1 for r in rows if r['status'] == 'checked_out'),
        'overdue': sum(1 for r in rows if r['status'] == 'overdue'),
        'finesOnReturns': float(collected or 0),
        'checkouts': rows,
    })


@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET"])
def api_student_checkouts(request, student_id):
    """A student's checkout history; students may only view their own"""
    if request.user.is_student() and request.user.pk != student_id:
        return JsonResponse({'msg': 'Not authorized to view these checkouts'}, status=403)
    checkouts = _checkout_queryset().filter(student_id=student_id)
    today = timezone.localdate()
    return JsonResponse([serialize_checkout(c, today) for c in checkouts], safe=False)
