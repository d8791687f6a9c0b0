from django.db import models, transaction
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.utils import timezone
from education.models import CustomUser
from datetime import timedelta
from decimal import Decimal
import logging

logger = logging.getLogger(__name__)


class CheckoutRejected(Exception):
    """Raised when a book cannot be checked out, returned or renewed"""

    def __init__(self, message, details=None):
        super().__init__(message)
        self.details = details


class Book(models.Model):
    """A title in the library catalogue; available counts copies on the shelf"""
    title = models.CharField(max_length=200)
    author = models.CharField(max_length=200)
    year = models.PositiveIntegerField(null=True, blank=True)
    genre = models.CharField(max_length=100, default='General')
    class_name = models.CharField(max_length=50, help_text="Class the book is shelved for (e.g., Grade 4)")
    copies = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    available = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'books'
        ordering = ['title', 'id']
        indexes = [
            models.Index(fields=['class_name'], name='books_class_idx'),
            models.Index(fields=['genre'], name='books_genre_idx'),
        ]

    def __str__(self):
        return f"{self.title} by {self.author}"

    def clean(self):
        super().clean()
        if self.available is not None and self.copies is not None and self.available > self.copies:
            raise ValidationError({'available': 'Available copies cannot exceed total copies'})

    def open_checkouts(self):
        return self.checkouts.filter(returned_at__isnull=True)


class BookCheckout(models.Model):
    """A copy of a book lent to a student"""
    STATUS_CHOICES = [
        ('checked_out', 'Checked Out'),
        ('overdue', 'Overdue'),
        ('returned', 'Returned'),
    ]

    book = models.ForeignKey(Book, on_delete=models.CASCADE, related_name='checkouts')
    student = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='book_checkouts')
    checked_out_at = models.DateTimeField(default=timezone.now)
    due_date = models.DateField()
    returned_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='checked_out')
    fine = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    renewals = models.PositiveIntegerField(default=0)
    created_by = models.ForeignKey(CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='checkouts_issued')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'book_checkouts'
        ordering = ['-checked_out_at', '-id']
        indexes = [
            models.Index(fields=['book', 'status'], name='checkouts_book_status_idx'),
            models.Index(fields=['student', 'status'], name='checkouts_student_status_idx'),
            models.Index(fields=['due_date'], name='checkouts_due_date_idx'),
        ]

    def __str__(self):
        return f"{self.book.title} -> {self.student.display_name} (due {self.due_date})"

    def derive_status(self, today=None):
        if self.returned_at:
            return 'returned'
        if today is None:
            today = timezone.localdate()
        return 'overdue' if today > self.due_date else 'checked_out'

    def days_overdue(self, today=None):
        """Days past the due date, counted to the return date once returned"""
        if self.returned_at:
            end = timezone.localdate(self.returned_at)
        else:
            end = today or timezone.localdate()
        return max(0, (end - self.due_date).days)

    def accrued_fine(self, today=None):
        return Decimal(self.days_overdue(today)) * Decimal(str(settings.LIBRARY_FINE_PER_DAY))

    def save(self, *args, **kwargs):
        self.status = self.derive_status()
        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | {'status', 'updated_at'}
        super().save(*args, **kwargs)

    @classmethod
    def check_out(cls, book_id, student, due_date, created_by=None):
        """
        Lend one copy of a book to a student.

        The book row is locked so two concurrent checkouts cannot take the
        last copy twice.

        Raises:
            Book.DoesNotExist: no book with this id
            CheckoutRejected: no copy available, book already held by the
                student, or the student has overdue books
        """
        today = timezone.localdate()
        with transaction.atomic():
            book = Book.objects.select_for_update().get(pk=book_id)
            if book.available < 1:
                raise CheckoutRejected('No available copies of this book')

            open_loans = cls.objects.filter(student=student, returned_at__isnull=True)
            if open_loans.filter(book=book).exists():
                raise CheckoutRejected('This book is already issued to this student and not yet returned')
            overdue = list(open_loans.filter(due_date__lt=today).values_list('pk', flat=True))
            if overdue:
                raise CheckoutRejected('Student has overdue books that must be returned first', details=overdue)

            checkout = cls.objects.create(book=book, student=student, due_date=due_date, created_by=created_by)
            book.available -= 1
            book.save(update_fields=['available', 'updated_at'])

        logger.info("Book %s checked out to student %s until %s (%d left)", book.pk, student.pk, due_date, book.available)
        return checkout

    @classmethod
    def return_copy(cls, checkout_id):
        """Close a checkout, record any late fine and put the copy back on the shelf"""
        with transaction.atomic():
            checkout = cls.objects.select_for_update().get(pk=checkout_id)
            if checkout.returned_at:
                raise CheckoutRejected('This book has already been returned')
            book = Book.objects.select_for_update().get(pk=checkout.book_id)

            checkout.returned_at = timezone.now()
            checkout.fine = checkout.accrued_fine()
            checkout.save()
            book.available = min(book.copies, book.available + 1)
            book.save(update_fields=['available', 'updated_at'])

        logger.info("Checkout %s returned (fine %s)", checkout.pk, checkout.fine)
        return checkout

    @classmethod
    def renew(cls, checkout_id, days=None):
        """Push the due date back by the renewal period"""
        if days is None:
            days = settings.LIBRARY_RENEWAL_DAYS
        with transaction.atomic():
            checkout = cls.objects.select_for_update().get(pk=checkout_id)
            if checkout.returned_at:
                raise CheckoutRejected('Cannot renew a returned book')
            checkout.due_date = checkout.due_date + timedelta(days=days)
            checkout.renewals += 1
            checkout.save()
        return checkout
