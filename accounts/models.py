from django.db import models, transaction
from django.core.validators import MinValueValidator, RegexValidator
from django.utils import timezone
from education.models import CustomUser, TERM_CHOICES
from decimal import Decimal
import logging
import time

from .utils import normalize_fee_status, derive_fee_status, compute_balance

logger = logging.getLogger(__name__)


class PaymentRejected(Exception):
    """Raised when a payment cannot be applied to a fee"""


class Fee(models.Model):
    """A student's fee obligation for one academic term"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('partially_paid', 'Partially Paid'),
        ('paid', 'Paid'),
        ('overdue', 'Overdue'),
        ('cancelled', 'Cancelled'),
    ]

    student = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='fees')
    class_name = models.CharField(max_length=50)
    academic_term = models.CharField(max_length=10, choices=TERM_CHOICES, blank=True, default='')
    academic_year = models.CharField(
        max_length=9, blank=True, default='',
        validators=[RegexValidator(r'^\d{4}/\d{4}$', 'Please provide a valid academic year in format YYYY/YYYY')]
    )
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), editable=False)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    due_date = models.DateField(null=True, blank=True)
    fee_type = models.CharField(max_length=50, default='tuition', help_text="tuition, library, sports, etc.")
    description = models.TextField(blank=True, default='')
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'fees'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['student', 'status'], name='fees_student_status_idx'),
            models.Index(fields=['class_name', 'status'], name='fees_class_status_idx'),
            models.Index(fields=['due_date'], name='fees_due_date_idx'),
        ]

    def __str__(self):
        return f"{self.student.display_name} - {self.academic_term} {self.academic_year}: {self.total_amount} ({self.status})"

    def refresh_derived_fields(self, today=None):
        """Recompute balance and status from the current amounts and due date"""
        self.status = normalize_fee_status(self.status)
        self.balance = compute_balance(self.total_amount, self.paid_amount)
        self.status = derive_fee_status(
            self.total_amount, self.paid_amount, self.due_date,
            current_status=self.status, today=today
        )

    def save(self, *args, **kwargs):
        self.total_amount = Decimal(str(self.total_amount or 0))
        self.paid_amount = Decimal(str(self.paid_amount or 0))
        self.refresh_derived_fields()

        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | {'balance', 'status', 'updated_at'}

        super().save(*args, **kwargs)

    @classmethod
    def record_payment(cls, fee_id, amount, payment_method='Cash', reference=None,
                       notes='', recorded_by=None, payment_date=None):
        """
        Append a payment to a fee and update its running totals.

        The fee row is locked for the duration of the transaction so that
        concurrent postings against the same fee are applied one after the other.

        Returns:
            tuple: (fee, payment)

        Raises:
            Fee.DoesNotExist: no fee with this id
            PaymentRejected: the fee is cancelled
        """
        with transaction.atomic():
            fee = cls.objects.select_for_update().get(pk=fee_id)
            if fee.status == 'cancelled':
                raise PaymentRejected('Payments cannot be recorded against a cancelled fee')

            payment = FeePayment.objects.create(
                fee=fee,
                amount=amount,
                payment_date=payment_date or timezone.now(),
                payment_method=payment_method or 'Cash',
                reference=reference or '',
                notes=notes or '',
                recorded_by=recorded_by,
            )
            fee.paid_amount = fee.paid_amount + payment.amount
            fee.save()

        logger.info(
            "Recorded payment %s of %s on fee %s (paid %s, balance %s, status %s)",
            payment.reference, payment.amount, fee.pk, fee.paid_amount, fee.balance, fee.status
        )
        return fee, payment


class FeePayment(models.Model):
    """Append-only payment record against a fee"""
    fee = models.ForeignKey(Fee, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    payment_date = models.DateTimeField(default=timezone.now)
    payment_method = models.CharField(max_length=50, default='Cash')
    reference = models.CharField(max_length=100, blank=True, default='', help_text="Receipt, M-Pesa code, cheque number, bank reference, etc.")
    notes = models.TextField(blank=True, default='')
    recorded_by = models.ForeignKey(CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='recorded_fee_payments')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'fee_payments'
        ordering = ['payment_date', 'id']

    def __str__(self):
        return f"Payment {self.reference} - {self.amount}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Fee payments are append-only and cannot be modified")
        if not self.reference:
            self.reference = f"PAY-{int(time.time() * 1000)}"
        super().save(*args, **kwargs)
