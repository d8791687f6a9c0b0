"""
URL configuration for schoolportal project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.1/topics/http/urls/
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # Django admin interface
    path('django-admin/', admin.site.urls),

    # Fee ledger API
    path('api/', include('accounts.urls')),

    # Library catalogue and checkouts
    path('api/', include('library.urls')),

    # Auth, classes, grades, attendance, announcements, report cards
    path('api/', include('education.api_urls')),
]
