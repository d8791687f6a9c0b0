"""
Fee ledger API views.
Returns JSON responses for the accountant/admin frontend.
"""
import logging
from datetime import datetime, time as dt_time
from decimal import Decimal

from django.db.models import Sum, Count, Q
from django.utils import timezone
from django.http import JsonResponse, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from education.decorators import token_required, role_required, check_role, api_error_handler
from education.models import CustomUser
from education.utils.api import parse_json_body, parse_date_value, iso
from education.utils.pdf_generator import generate_fee_receipt_pdf
from .models import Fee, PaymentRejected
from .utils import to_decimal, parse_payment_amount, normalize_fee_status, FEE_STATUSES

logger = logging.getLogger(__name__)


def serialize_student(student):
    """Student summary embedded in fee payloads, with a display name for the frontend"""
    if student is None:
        return None
    return {
        'id': student.pk,
        'name': student.name,
        'email': student.email,
        'class': student.class_name,
        'displayName': student.display_name,
    }


def serialize_payment(payment):
    return {
        'id': payment.pk,
        'amount': float(payment.amount),
        'paymentDate': iso(payment.payment_date),
        'paymentMethod': payment.payment_method,
        'reference': payment.reference,
        'notes': payment.notes,
        'recordedBy': payment.recorded_by_id,
        'createdAt': iso(payment.created_at),
    }


def serialize_fee(fee, include_payments=True):
    data = {
        'id': fee.pk,
        'student': serialize_student(fee.student),
        'className': fee.class_name,
        'academicTerm': fee.academic_term or '',
        'academicYear': fee.academic_year or '',
        'totalAmount': float(fee.total_amount),
        'paidAmount': float(fee.paid_amount),
        'balance': float(fee.balance),
        'status': fee.status,
        'dueDate': iso(fee.due_date),
        'feeType': fee.fee_type,
        'description': fee.description,
        'notes': fee.notes,
        'createdAt': iso(fee.created_at),
        'updatedAt': iso(fee.updated_at),
    }
    if include_payments:
        data['payments'] = [serialize_payment(p) for p in fee.payments.all()]
    return data


def _fee_queryset():
    return Fee.objects.select_related('student').prefetch_related('payments')


def _filter_fees(request, fees):
    """Apply the status, class and search query-string filters"""
    status = request.GET.get('status', '').strip()
    if status:
        fees = fees.filter(status=normalize_fee_status(status))

    class_filter = request.GET.get('class', '').strip()
    if class_filter and class_filter != 'All Classes':
        fees = fees.filter(
            Q(student__class_name__icontains=class_filter) | Q(class_name__icontains=class_filter)
        )

    search = request.GET.get('search', '').strip()
    if search:
        fees = fees.filter(student__name__icontains=search)

    return fees


@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET", "POST"])
def api_fees_list(request):
    """List fees (optionally filtered) or create a new fee"""
    if request.method == 'GET':
        fees = _fee_queryset()
        # Students only ever see their own fees
        if request.user.is_student():
            fees = fees.filter(student=request.user)
        fees = _filter_fees(request, fees)
        return JsonResponse([serialize_fee(fee) for fee in fees], safe=False)

    denied = check_role(request, 'admin')
    if denied:
        return denied

    data, error = parse_json_body(request)
    if error:
        return error

    student_id = data.get('student')
    class_name = str(data.get('className') or '').strip()
    amount = data.get('amount')
    status = data.get('status')
    if not student_id or not class_name or not amount or not status:
        return JsonResponse({'success': False, 'error': 'Student, class, amount, and status are required.'}, status=400)

    try:
        student = CustomUser.objects.get(pk=student_id, role='student')
    except (CustomUser.DoesNotExist, ValueError, TypeError):
        return JsonResponse({'success': False, 'error': 'Student not found'}, status=400)

    try:
        due_date = parse_date_value(data.get('dueDate'))
    except ValueError as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=400)

    total_amount = to_decimal(data.get('totalAmount'), default=None)
    if total_amount is None:
        total_amount = to_decimal(amount)

    fee = Fee(
        student=student,
        class_name=class_name,
        academic_term=str(data.get('academicTerm') or ''),
        academic_year=str(data.get('academicYear') or ''),
        total_amount=total_amount,
        status=normalize_fee_status(status),
        due_date=due_date,
        fee_type=str(data.get('feeType') or 'tuition'),
        description=str(data.get('description') or ''),
        notes=str(data.get('notes') or ''),
    )
    fee.full_clean(exclude=['balance'])
    fee.save()

    logger.info("Fee %s created for student %s by %s", fee.pk, student.pk, request.user.email)
    return JsonResponse({
        'success': True,
        'msg': 'Fee added!',
        'fee': serialize_fee(fee),
    }, status=201)


@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET", "PUT", "DELETE"])
def api_fee_detail(request, pk):
    """Get, update or delete a single fee"""
    if request.method == 'GET':
        try:
            fee = _fee_queryset().get(pk=pk)
        except Fee.DoesNotExist:
            return JsonResponse({'error': 'Fee not found'}, status=404)
        if request.user.is_student() and fee.student_id != request.user.pk:
            return JsonResponse({'error': 'Fee not found'}, status=404)
        return JsonResponse(serialize_fee(fee))

    denied = check_role(request, 'admin')
    if denied:
        return denied

    if request.method == 'DELETE':
        deleted, _ = Fee.objects.filter(pk=pk).delete()
        if not deleted:
            return JsonResponse({'error': 'Fee not found'}, status=404)
        logger.info("Fee %s deleted by %s", pk, request.user.email)
        return JsonResponse({'msg': 'Fee deleted successfully'})

    data, error = parse_json_body(request)
    if error:
        return error

    try:
        fee = Fee.objects.select_related('student').get(pk=pk)
    except Fee.DoesNotExist:
        return JsonResponse({'error': 'Fee not found'}, status=404)

    if 'className' in data:
        fee.class_name = str(data['className'] or '').strip()
    if 'academicTerm' in data:
        fee.academic_term = str(data['academicTerm'] or '')
    if 'academicYear' in data:
        fee.academic_year = str(data['academicYear'] or '')
    if 'totalAmount' in data or 'amount' in data:
        fee.total_amount = to_decimal(data.get('totalAmount', data.get('amount')), default=fee.total_amount)
    if 'dueDate' in data:
        try:
            fee.due_date = parse_date_value(data['dueDate'])
        except ValueError as e:
            return JsonResponse({'success': False, 'error': str(e)}, status=400)
    for field, key in (('fee_type', 'feeType'), ('description', 'description'), ('notes', 'notes')):
        if key in data:
            setattr(fee, field, str(data[key] or ''))
    if 'status' in data:
        status = normalize_fee_status(data['status'])
        if status not in FEE_STATUSES:
            return JsonResponse({'success': False, 'error': f"'{data['status']}' is not a valid status"}, status=400)
        # Only cancellation is set by hand; any other value re-derives from the amounts
        fee.status = 'cancelled' if status == 'cancelled' else 'pending'

    fee.full_clean(exclude=['balance'])
    fee.save()
    fee = _fee_queryset().get(pk=fee.pk)
    return JsonResponse({'success': True, 'msg': 'Fee updated', 'fee': serialize_fee(fee)})


@csrf_exempt
@api_error_handler
@token_required
@role_required('admin')
@require_http_methods(["POST"])
def api_fee_record_payment(request, pk):
    """Record a payment against a fee"""
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        amount = parse_payment_amount(data.get('amount'))
    except ValueError as e:
        logger.info("Rejected payment on fee %s: invalid amount %r", pk, data.get('amount'))
        return JsonResponse({'success': False, 'error': str(e)}, status=400)

    try:
        payment_date = parse_date_value(data.get('paymentDate'))
    except ValueError as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=400)

    try:
        fee, payment = Fee.record_payment(
            pk,
            amount,
            payment_method=str(data.get('paymentMethod') or 'Cash'),
            reference=str(data.get('reference') or ''),
            notes=str(data.get('notes') or ''),
            recorded_by=request.user,
            payment_date=payment_date and _start_of_day(payment_date),
        )
    except Fee.DoesNotExist:
        return JsonResponse({'success': False, 'error': 'Fee record not found'}, status=404)
    except PaymentRejected as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=400)

    fee = _fee_queryset().get(pk=fee.pk)
    return JsonResponse({
        'success': True,
        'message': 'Payment recorded successfully',
        'fee': serialize_fee(fee),
        'payment': serialize_payment(payment),
    })


@csrf_exempt
@api_error_handler
@token_required
@role_required('admin', 'teacher')
@require_http_methods(["GET"])
def api_fees_summary(request):
    """Counts per status and billed/collected/outstanding totals"""
    fees = _filter_fees(request, Fee.objects.all())

    totals = fees.exclude(status='cancelled').aggregate(
        billed=Sum('total_amount'),
        collected=Sum('paid_amount'),
        outstanding=Sum('balance'),
    )
    by_status = {status: 0 for status in FEE_STATUSES}
    for row in fees.values('status').annotate(count=Count('id')):
        by_status[row['status']] = row['count']

    return JsonResponse({
        'count': sum(by_status.values()),
        'byStatus': by_status,
        'totalBilled': float(totals['billed'] or Decimal('0.00')),
        'totalCollected': float(totals['collected'] or Decimal('0.00')),
        'totalOutstanding': float(totals['outstanding'] or Decimal('0.00')),
    })


@csrf_exempt
@api_error_handler
@token_required
@require_http_methods(["GET"])
def api_fee_receipt(request, pk):
    """Download a PDF statement of the fee and its payments"""
    try:
        fee = _fee_queryset().get(pk=pk)
    except Fee.DoesNotExist:
        return JsonResponse({'error': 'Fee not found'}, status=404)
    if request.user.is_student() and fee.student_id != request.user.pk:
        return JsonResponse({'error': 'Fee not found'}, status=404)

    buffer = generate_fee_receipt_pdf(fee)
    response = HttpResponse(buffer.getvalue(), content_type='application/pdf')
    response['Content-Disposition'] = f'attachment; filename="fee_{fee.pk}_statement.pdf"'
    return response


def _start_of_day(day):
    return timezone.make_aware(datetime.combine(day, dt_time.min))
