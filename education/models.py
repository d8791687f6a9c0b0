from django.db import models
from django.contrib.auth.models import AbstractUser
from django.core.validators import MinValueValidator, MaxValueValidator, RegexValidator
from django.core.exceptions import ValidationError
from decimal import Decimal
import re


CLASS_NAME_PATTERN = re.compile(r'^(Grade\s\d{1,2}|Form\s[1-4]|PP[12])$', re.IGNORECASE)

TERM_CHOICES = [
    ('Term 1', 'Term 1'),
    ('Term 2', 'Term 2'),
    ('Term 3', 'Term 3'),
]


def format_class_name(value):
    """
    Validate and standardise a student class name.

    Accepts 'Grade N', 'Form 1-4', 'PP1' or 'PP2' in any case and returns the
    canonical spelling ('grade 1' -> 'Grade 1', 'pp2' -> 'PP2').
    """
    value = ' '.join((value or '').split())
    if not CLASS_NAME_PATTERN.match(value):
        raise ValidationError(
            f"{value or 'Empty value'} is not a valid class. Please use format 'Grade X' or 'Form X'"
        )
    if value.lower().startswith('pp'):
        return value.upper()
    return ' '.join(word.capitalize() for word in value.split(' '))


def grade_letter(score):
    """Letter grade for a 0-100 score"""
    score = Decimal(str(score))
    if score >= 80:
        return 'A'
    if score >= 70:
        return 'A-'
    if score >= 60:
        return 'B+'
    if score >= 50:
        return 'B'
    if score >= 40:
        return 'B-'
    if score >= 30:
        return 'C+'
    if score >= 20:
        return 'C'
    return 'E'


def grade_remarks(score):
    score = Decimal(str(score))
    if score >= 70:
        return 'Excellent'
    if score >= 60:
        return 'Very Good'
    if score >= 50:
        return 'Good'
    if score >= 40:
        return 'Average'
    return 'Needs Improvement'


class CustomUser(AbstractUser):
    """Custom user model with school roles. Users log in with their email."""
    ROLE_CHOICES = [
        ('student', 'Student'),
        ('teacher', 'Teacher'),
        ('admin', 'Admin'),
    ]

    name = models.CharField(max_length=150)
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='student')
    class_name = models.CharField(max_length=50, blank=True, default='', help_text="Class for students (e.g., Grade 4, Form 2, PP1)")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'
        ordering = ['name']
        indexes = [
            models.Index(fields=['role', 'class_name'], name='users_role_class_idx'),
        ]

    def __str__(self):
        return f"{self.display_name} ({self.get_role_display()})"

    @property
    def display_name(self):
        return self.name or self.email or f"Student {str(self.pk)[:6]}..."

    def is_student(self):
        return self.role == 'student'

    def is_teacher(self):
        return self.role == 'teacher'

    def is_admin(self):
        """Admins are either role=admin or Django superusers"""
        return self.role == 'admin' or self.is_superuser

    def has_role(self, *roles):
        """Case-insensitive role check; superusers count as admin"""
        allowed = {str(role).strip().lower() for role in roles if role}
        if self.is_superuser and 'admin' in allowed:
            return True
        return str(self.role or '').strip().lower() in allowed

    def clean(self):
        super().clean()
        if self.role == 'student':
            self.class_name = format_class_name(self.class_name)


class SchoolClass(models.Model):
    """A class/stream for an academic year"""
    LEVEL_CHOICES = [
        ('Pre-School', 'Pre-School'),
        ('Primary', 'Primary'),
        ('Elementary', 'Elementary'),
        ('Middle School', 'Middle School'),
        ('High School', 'High School'),
    ]

    name = models.CharField(max_length=100)
    level = models.CharField(max_length=20, choices=LEVEL_CHOICES)
    section = models.CharField(max_length=50, blank=True, default='')
    capacity = models.PositiveIntegerField(default=30, validators=[MinValueValidator(1)])
    teacher = models.ForeignKey(CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='classes_in_charge')
    room_number = models.CharField(max_length=20, blank=True, default='')
    academic_year = models.CharField(max_length=20)
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'school_classes'
        ordering = ['name']
        unique_together = ['name', 'academic_year']

    def __str__(self):
        return f"{self.name} ({self.academic_year})"

    def get_student_count(self):
        return CustomUser.objects.filter(role='student', class_name__iexact=self.name).count()


class Grade(models.Model):
    """A student's score in one subject for a term"""
    student = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='grades')
    class_name = models.CharField(max_length=50)
    subject = models.CharField(max_length=100)
    score = models.DecimalField(
        max_digits=5, decimal_places=2,
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))]
    )
    term = models.CharField(max_length=10, choices=TERM_CHOICES)
    academic_year = models.CharField(
        max_length=9,
        validators=[RegexValidator(r'^\d{4}-\d{4}$', 'Please enter a valid academic year (e.g., 2024-2025)')]
    )
    teacher = models.ForeignKey(CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='grades_given')
    comments = models.TextField(blank=True, default='')
    is_finalized = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'grades'
        ordering = ['academic_year', 'term', 'subject']
        unique_together = ['student', 'subject', 'term', 'academic_year']

    def __str__(self):
        return f"{self.student.display_name} - {self.subject} ({self.term} {self.academic_year}): {self.score}"

    @property
    def letter(self):
        return grade_letter(self.score)

    @property
    def remarks(self):
        return grade_remarks(self.score)

    def save(self, *args, **kwargs):
        if not self.class_name and self.student_id:
            self.class_name = self.student.class_name
        super().save(*args, **kwargs)


class AttendanceSheet(models.Model):
    """One teacher's attendance register for a class on a given day"""
    class_name = models.CharField(max_length=50)
    date = models.DateField()
    created_by = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='attendance_sheets')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'attendance_sheets'
        ordering = ['-date', 'class_name']
        unique_together = ['class_name', 'date', 'created_by']

    def __str__(self):
        return f"{self.class_name} - {self.date}"


class AttendanceRecord(models.Model):
    STATUS_CHOICES = [
        ('present', 'Present'),
        ('absent', 'Absent'),
        ('late', 'Late'),
        ('excused', 'Excused'),
    ]

    sheet = models.ForeignKey(AttendanceSheet, on_delete=models.CASCADE, related_name='records')
    student = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='attendance_records')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='present')
    remarks = models.CharField(max_length=255, blank=True, default='')

    class Meta:
        db_table = 'attendance_records'
        ordering = ['student__name']
        unique_together = ['sheet', 'student']

    def __str__(self):
        return f"{self.student.display_name}: {self.status}"


class Announcement(models.Model):
    text = models.TextField()
    created_by = models.CharField(max_length=150, default='Unknown')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'announcements'
        ordering = ['-created_at']

    def __str__(self):
        return self.text[:50]
