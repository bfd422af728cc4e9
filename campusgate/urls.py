"""
URL configuration for the campusgate project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # Django admin
    path('admin/', admin.site.urls),

    # Access control - verdicts, registrations, audit trail
    path('access/', include(('access.urls', 'access'), namespace='access')),
]
