from django.urls import path
from . import views

app_name = 'accounts'

urlpatterns = [
    # Fees
    path('fees', views.api_fees_list, name='fees_list'),
    path('fees/summary', views.api_fees_summary, name='fees_summary'),
    path('fees/<int:pk>', views.api_fee_detail, name='fee_detail'),

    # Payments and statements
    path('fees/<int:pk>/payments', views.api_fee_record_payment, name='fee_record_payment'),
    path('fees/<int:pk>/receipt', views.api_fee_receipt, name='fee_receipt'),
]
