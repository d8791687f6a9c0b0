"""
API URL patterns for school endpoints
"""
from django.urls import path
from . import api_views

urlpatterns = [
    # Authentication API
    path('auth/register', api_views.api_register, name='api_register'),
    path('auth/login', api_views.api_login, name='api_login'),
    path('auth/me', api_views.api_me, name='api_me'),

    # Students API
    path('students', api_views.api_students_list, name='api_students_list'),

    # Classes API
    path('classes', api_views.api_classes_list, name='api_classes_list'),
    path('classes/<int:pk>', api_views.api_class_detail, name='api_class_detail'),

    # Grades API
    path('grades', api_views.api_grades_list, name='api_grades_list'),
    path('grades/<int:pk>', api_views.api_grade_detail, name='api_grade_detail'),

    # Attendance API
    path('attendance', api_views.api_attendance, name='api_attendance'),

    # Announcements API
    path('announcements', api_views.api_announcements, name='api_announcements'),
    path('announcements/<int:pk>', api_views.api_announcement_detail, name='api_announcement_detail'),

    # Report cards
    path('report-cards/<int:student_id>', api_views.api_report_card, name='api_report_card'),
]
