from django.urls import path

from . import views

urlpatterns = [
    # Appointments
    path('api/appointments/', views.appointment_collection, name='appointment_collection'),
    path('api/appointments/sweep/', views.sweep_lapsed_appointments, name='sweep_lapsed_appointments'),
    path('api/appointments/<int:appointment_id>/', views.appointment_detail, name='appointment_detail'),
    path('api/appointments/<int:appointment_id>/complete/', views.complete_appointment, name='complete_appointment'),
    path('api/appointments/<int:appointment_id>/missed/', views.miss_appointment, name='miss_appointment'),

    # Calendars & vaccines
    path('api/calendars/', views.calendar_collection, name='calendar_collection'),
    path('api/calendars/dose-warnings/', views.calendar_dose_warnings, name='calendar_dose_warnings'),
    path('api/calendars/<int:calendar_id>/', views.calendar_detail, name='calendar_detail'),
    path('api/vaccines/<int:vaccine_id>/', views.vaccine_detail, name='vaccine_detail'),
]
