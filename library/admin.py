from django.contrib import admin
from .models import Book, BookCheckout


@admin.register(Book)
class BookAdmin(admin.ModelAdmin):
    list_display = ['title', 'author', 'genre', 'class_name', 'copies', 'available']
    list_filter = ['genre', 'class_name']
    search_fields = ['title', 'author']
    readonly_fields = ['available', 'created_at', 'updated_at']


@admin.register(BookCheckout)
class BookCheckoutAdmin(admin.ModelAdmin):
    list_display = ['book', 'student', 'checked_out_at', 'due_date', 'returned_at', 'status', 'fine', 'renewals']
    list_filter = ['status', 'due_date']
    search_fields = ['book__title', 'student__name', 'student__email']
    readonly_fields = ['status', 'fine', 'returned_at', 'renewals', 'created_at', 'updated_at']
