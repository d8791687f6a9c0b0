from django.contrib import admin
from .models import Fee, FeePayment


class FeePaymentInline(admin.TabularInline):
    model = FeePayment
    extra = 0
    can_delete = False
    fields = ['amount', 'payment_date', 'payment_method', 'reference', 'notes', 'recorded_by']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(Fee)
class FeeAdmin(admin.ModelAdmin):
    list_display = ['student', 'class_name', 'academic_term', 'academic_year', 'total_amount', 'paid_amount', 'balance', 'status', 'due_date']
    list_filter = ['status', 'academic_term', 'academic_year', 'class_name']
    search_fields = ['student__name', 'student__email', 'class_name']
    readonly_fields = ['paid_amount', 'balance', 'created_at', 'updated_at']
    inlines = [FeePaymentInline]


@admin.register(FeePayment)
class FeePaymentAdmin(admin.ModelAdmin):
    list_display = ['reference', 'fee', 'amount', 'payment_method', 'payment_date', 'recorded_by']
    list_filter = ['payment_method', 'payment_date']
    search_fields = ['reference', 'fee__student__name']
    readonly_fields = ['fee', 'amount', 'payment_date', 'payment_method', 'reference', 'notes', 'recorded_by', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
