from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import CustomUser, SchoolClass, Grade, AttendanceSheet, AttendanceRecord, Announcement


@admin.register(CustomUser)
class CustomUserAdmin(BaseUserAdmin):
    list_display = ['email', 'name', 'role', 'class_name', 'is_active', 'date_joined']
    list_filter = ['role', 'is_active', 'is_staff', 'class_name']
    search_fields = ['email', 'name', 'username']
    ordering = ['name']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('School Information', {
            'fields': ('name', 'role', 'class_name')
        }),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('School Information', {
            'fields': ('email', 'name', 'role', 'class_name')
        }),
    )


@admin.register(SchoolClass)
class SchoolClassAdmin(admin.ModelAdmin):
    list_display = ['name', 'level', 'section', 'academic_year', 'teacher', 'capacity', 'room_number']
    list_filter = ['level', 'academic_year']
    search_fields = ['name', 'section', 'room_number']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(Grade)
class GradeAdmin(admin.ModelAdmin):
    list_display = ['student', 'subject', 'score', 'term', 'academic_year', 'is_finalized', 'teacher']
    list_filter = ['term', 'academic_year', 'is_finalized', 'class_name']
    search_fields = ['student__name', 'student__email', 'subject']
    readonly_fields = ['created_at', 'updated_at']


class AttendanceRecordInline(admin.TabularInline):
    model = AttendanceRecord
    extra = 0


@admin.register(AttendanceSheet)
class AttendanceSheetAdmin(admin.ModelAdmin):
    list_display = ['class_name', 'date', 'created_by', 'updated_at']
    list_filter = ['date', 'class_name']
    inlines = [AttendanceRecordInline]


@admin.register(Announcement)
class AnnouncementAdmin(admin.ModelAdmin):
    list_display = ['text', 'created_by', 'created_at']
    search_fields = ['text', 'created_by']
