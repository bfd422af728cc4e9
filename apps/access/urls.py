# access/urls.py

from django.urls import path

from . import views

app_name = 'access'

urlpatterns = [
    path('students/<uuid:student_id>/verdict/', views.student_verdict, name='student_verdict'),
    path('registrations/', views.register_student, name='register_student'),
    path('logs/', views.access_logs, name='access_logs'),
]
