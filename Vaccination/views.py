import logging

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from .decorators import account_required, agent_required, national_required
from .exceptions import Forbidden, VaccinationError
from .serializers import (
    CalendarInputSerializer,
    CompleteAppointmentSerializer,
    CompletedVaccinationSerializer,
    OverdueEntrySerializer,
    RescheduleAppointmentSerializer,
    ScheduleAppointmentSerializer,
    ScheduledAppointmentSerializer,
    SweepSerializer,
    VaccineCalendarSerializer,
)
from .services import appointments as appointment_service
from .services import calendar_allocator

logger = logging.getLogger(__name__)


def error_response(error):
    return Response({"message": error.message}, status=error.status_code)


def invalid_response(serializer):
    return Response(
        {"message": "Invalid request", "errors": serializer.errors},
        status=status.HTTP_400_BAD_REQUEST,
    )


# ==============================
# APPOINTMENTS
# ==============================
@api_view(['GET', 'POST'])
@account_required
def appointment_collection(request):
    """GET: appointments visible to the caller. POST: schedule a new one (agents only)."""
    if request.method == 'GET':
        queryset = appointment_service.list_appointments_for(request.account)
        return Response({"items": ScheduledAppointmentSerializer(queryset, many=True).data})

    serializer = ScheduleAppointmentSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_response(serializer)
    data = serializer.validated_data

    try:
        appointment, warning = appointment_service.schedule_appointment(
            request.account,
            child_id=data['child_id'],
            vaccine_id=data['vaccine_id'],
            scheduled_for=data['scheduled_for'],
            calendar_id=data.get('calendar_id'),
            administered_by_id=data.get('administered_by_id'),
        )
    except VaccinationError as e:
        return error_response(e)

    payload = ScheduledAppointmentSerializer(appointment).data
    if warning:
        payload['warning'] = warning
    return Response(payload, status=status.HTTP_201_CREATED)


@api_view(['PUT', 'DELETE'])
@agent_required
def appointment_detail(request, appointment_id):
    if request.method == 'DELETE':
        try:
            appointment_service.cancel_appointment(request.account, appointment_id)
        except VaccinationError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = RescheduleAppointmentSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_response(serializer)
    data = serializer.validated_data

    try:
        appointment = appointment_service.reschedule_appointment(
            request.account,
            appointment_id,
            scheduled_for=data['scheduled_for'],
            vaccine_id=data['vaccine_id'],
            calendar_id=data.get('calendar_id', appointment_service.UNSET),
            administered_by_id=data.get('administered_by_id', appointment_service.UNSET),
        )
    except VaccinationError as e:
        return error_response(e)

    return Response(ScheduledAppointmentSerializer(appointment).data)


@api_view(['POST'])
@agent_required
def complete_appointment(request, appointment_id):
    serializer = CompleteAppointmentSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_response(serializer)

    try:
        completed = appointment_service.complete_appointment(
            request.account, appointment_id, notes=serializer.validated_data.get('notes')
        )
    except VaccinationError as e:
        return error_response(e)

    return Response(CompletedVaccinationSerializer(completed).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@agent_required
def miss_appointment(request, appointment_id):
    try:
        overdue = appointment_service.mark_appointment_missed(request.account, appointment_id)
    except VaccinationError as e:
        return error_response(e)

    return Response(OverdueEntrySerializer(overdue).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@account_required
def sweep_lapsed_appointments(request):
    """Move lapsed appointments of a planner or a health center to overdue."""
    serializer = SweepSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_response(serializer)
    data = serializer.validated_data
    account = request.account

    try:
        if not account.is_national:
            # Agents only sweep their own appointments or their own health center
            if data.get('planner_id') and data['planner_id'] != account.id:
                raise Forbidden()
            if data.get('health_center_id') and data['health_center_id'] != account.health_center_id:
                raise Forbidden()

        if data.get('planner_id'):
            overdue = appointment_service.sweep_lapsed_for_planner(data['planner_id'])
        else:
            overdue = appointment_service.sweep_lapsed_for_health_center(data['health_center_id'])
    except VaccinationError as e:
        return error_response(e)

    return Response(OverdueEntrySerializer(overdue, many=True).data)


# ==============================
# CALENDARS & VACCINES
# ==============================
def _calendar_arguments(data):
    return {
        'description': data['description'],
        'age_unit': data['age_unit'],
        'specific_age': data.get('specific_age'),
        'min_age': data.get('min_age'),
        'max_age': data.get('max_age'),
        'vaccine_dose_counts': data['vaccines'],
    }


@api_view(['GET', 'POST'])
@account_required
def calendar_collection(request):
    if request.method == 'GET':
        calendars = calendar_allocator.list_calendars()
        return Response(VaccineCalendarSerializer(calendars, many=True).data)

    serializer = CalendarInputSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_response(serializer)

    try:
        calendar = calendar_allocator.create_calendar(request.account, **_calendar_arguments(serializer.validated_data))
    except VaccinationError as e:
        return error_response(e)

    return Response(VaccineCalendarSerializer(calendar).data, status=status.HTTP_201_CREATED)


@api_view(['PUT', 'DELETE'])
@national_required
def calendar_detail(request, calendar_id):
    if request.method == 'DELETE':
        try:
            calendar_allocator.delete_calendar(request.account, calendar_id)
        except VaccinationError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = CalendarInputSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_response(serializer)

    try:
        calendar = calendar_allocator.update_calendar(
            request.account, calendar_id, **_calendar_arguments(serializer.validated_data)
        )
    except VaccinationError as e:
        return error_response(e)

    return Response(VaccineCalendarSerializer(calendar).data)


@api_view(['GET'])
@national_required
def calendar_dose_warnings(request):
    return Response({"warnings": calendar_allocator.list_dose_warnings()})


@api_view(['DELETE'])
@national_required
def vaccine_detail(request, vaccine_id):
    try:
        appointment_service.delete_vaccine(request.account, vaccine_id)
    except VaccinationError as e:
        return error_response(e)
    return Response(status=status.HTTP_204_NO_CONTENT)
