from django.urls import path
from . import views

app_name = 'library'

urlpatterns = [
    # Catalogue
    path('library', views.api_books, name='books'),
    path('library/my-books', views.api_my_books, name='my_books'),
    path('library/<int:pk>', views.api_book_detail, name='book_detail'),

    # Checkouts
    path('checkouts', views.api_checkout_create, name='checkout_create'),
    path('checkouts/current', views.api_checkouts_current, name='checkouts_current'),
    path('checkouts/overdue', views.api_checkouts_overdue, name='checkouts_overdue'),
    path('checkouts/report', views.api_checkouts_report, name='checkouts_report'),
    path('checkouts/student/<int:student_id>', views.api_student_checkouts, name='student_checkouts'),
    path('checkouts/<int:pk>/return', views.api_checkout_return, name='checkout_return'),
    path('checkouts/<int:pk>/renew', views.api_checkout_renew, name='checkout_renew'),
]
