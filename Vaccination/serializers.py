from rest_framework import serializers

from .models import CompletedVaccination, OverdueEntry, ScheduledAppointment, VaccineCalendar
from .services.calendar_allocator import (
    build_range_label,
    build_target_label,
    compute_calendar_age_weight,
    summarize_calendar_vaccines,
)


# ==============================
# INPUT
# ==============================
class ScheduleAppointmentSerializer(serializers.Serializer):
    child_id = serializers.IntegerField(min_value=1)
    vaccine_id = serializers.IntegerField(min_value=1)
    scheduled_for = serializers.DateTimeField()
    calendar_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    administered_by_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class RescheduleAppointmentSerializer(serializers.Serializer):
    """Omitted ``calendar_id`` / ``administered_by_id`` keep their value, null clears it."""
    scheduled_for = serializers.DateTimeField()
    vaccine_id = serializers.IntegerField(min_value=1)
    calendar_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    administered_by_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class CompleteAppointmentSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class SweepSerializer(serializers.Serializer):
    planner_id = serializers.IntegerField(min_value=1, required=False)
    health_center_id = serializers.IntegerField(min_value=1, required=False)

    def validate(self, attrs):
        if bool(attrs.get('planner_id')) == bool(attrs.get('health_center_id')):
            raise serializers.ValidationError("Provide either planner_id or health_center_id")
        return attrs


class CalendarVaccineSerializer(serializers.Serializer):
    vaccine_id = serializers.IntegerField(min_value=1)
    count = serializers.IntegerField()


class CalendarInputSerializer(serializers.Serializer):
    description = serializers.CharField(allow_blank=True)
    age_unit = serializers.CharField()
    specific_age = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    min_age = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    max_age = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    vaccines = CalendarVaccineSerializer(many=True)


# ==============================
# OUTPUT
# ==============================
class ScheduledAppointmentSerializer(serializers.ModelSerializer):
    vaccine_name = serializers.CharField(source='vaccine.name', read_only=True)
    child_name = serializers.CharField(source='child.full_name', read_only=True)

    class Meta:
        model = ScheduledAppointment
        fields = [
            'id', 'child', 'child_name', 'vaccine', 'vaccine_name', 'calendar',
            'scheduled_for', 'dose', 'planner', 'administered_by',
        ]


class CompletedVaccinationSerializer(serializers.ModelSerializer):
    vaccine_name = serializers.CharField(source='vaccine.name', read_only=True)

    class Meta:
        model = CompletedVaccination
        fields = ['id', 'child', 'vaccine', 'vaccine_name', 'calendar', 'dose', 'administered_by', 'notes', 'completed_at']


class OverdueEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = OverdueEntry
        fields = ['id', 'child', 'vaccine', 'calendar', 'dose', 'due_date', 'escalated_to']


class VaccineCalendarSerializer(serializers.ModelSerializer):
    target_age_label = serializers.SerializerMethodField()
    age_range_label = serializers.SerializerMethodField()
    age_sort_weight = serializers.SerializerMethodField()
    vaccines = serializers.SerializerMethodField()

    class Meta:
        model = VaccineCalendar
        fields = [
            'id', 'description', 'age_unit', 'specific_age', 'min_age', 'max_age',
            'target_age_label', 'age_range_label', 'age_sort_weight', 'vaccines',
        ]

    def get_target_age_label(self, obj):
        return build_target_label(obj)

    def get_age_range_label(self, obj):
        return build_range_label(obj)

    def get_age_sort_weight(self, obj):
        return compute_calendar_age_weight(obj)

    def get_vaccines(self, obj):
        return summarize_calendar_vaccines(obj)
