from rest_framework import serializers

from .models import Shift, ShiftStatus


class ShiftSerializer(serializers.ModelSerializer):
    """Read representation of a shift, including its EVV and billing outcome."""

    class Meta:
        model = Shift
        fields = [
            'id', 'business_id', 'client', 'client_name', 'caregiver', 'caregiver_name',
            'start_time', 'end_time', 'authorized_hours', 'status',
            'check_in_time', 'check_in_latitude', 'check_in_longitude', 'check_in_accuracy',
            'check_out_time', 'check_out_latitude', 'check_out_longitude', 'check_out_accuracy',
            'geofence_status', 'geofence_distance_miles', 'evv_status', 'evv_exceptions',
            'verification_method', 'late_arrival_minutes', 'early_departure_minutes',
            'actual_hours', 'units', 'billing_code', 'modifier', 'billing_needs_review',
            'visit_changes', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ShiftScheduleSerializer(serializers.ModelSerializer):
    """Create or reschedule a shift. Lifecycle fields are never writable here."""

    class Meta:
        model = Shift
        fields = ['client', 'caregiver', 'start_time', 'end_time', 'authorized_hours', 'billing_code', 'modifier']
        extra_kwargs = {
            'authorized_hours': {'required': False},
            'billing_code': {'required': False},
            'modifier': {'required': False},
        }

    def _business_id(self):
        return self.context.get('business_id')

    def validate_client(self, value):
        if self._business_id() is not None and value.business_id != self._business_id():
            raise serializers.ValidationError("Client does not belong to this agency.")
        return value

    def validate_caregiver(self, value):
        if self._business_id() is not None and value.business_id != self._business_id():
            raise serializers.ValidationError("Caregiver does not belong to this agency.")
        return value

    def validate(self, attrs):
        start_time = attrs.get('start_time', getattr(self.instance, 'start_time', None))
        end_time = attrs.get('end_time', getattr(self.instance, 'end_time', None))
        if start_time and end_time and end_time <= start_time:
            raise serializers.ValidationError({'end_time': "End time must be after start time."})

        # Display names follow the foreign keys when they change
        if self.instance is not None:
            if 'client' in attrs and attrs['client'].pk != self.instance.client_id:
                attrs['client_name'] = attrs['client'].full_name
            if 'caregiver' in attrs and attrs['caregiver'].pk != self.instance.caregiver_id:
                attrs['caregiver_name'] = attrs['caregiver'].full_name
        return attrs


class ClockEventSerializer(serializers.Serializer):
    """
    Device payload for clock-in and clock-out.

    Coordinates are range-checked when the reading is built, so bad values
    surface as InvalidCoordinate rather than field errors.
    """
    latitude = serializers.FloatField(required=False, allow_null=True)
    longitude = serializers.FloatField(required=False, allow_null=True)
    accuracy = serializers.FloatField(required=False, allow_null=True)
    force = serializers.BooleanField(required=False, default=False)
    location_error = serializers.CharField(required=False, allow_blank=True, max_length=50)
    location_error_detail = serializers.CharField(required=False, allow_blank=True, max_length=500)


class TransitionReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500, default='')


class ShiftQuerySerializer(serializers.Serializer):
    """Filters accepted by the shift list and conflict report."""
    caregiver = serializers.IntegerField(required=False, min_value=1)
    status = serializers.ChoiceField(choices=ShiftStatus.choices, required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)

    def validate(self, attrs):
        date_from = attrs.get('date_from')
        date_to = attrs.get('date_to')
        if date_from and date_to and date_to < date_from:
            raise serializers.ValidationError({'date_to': "date_to must not be before date_from."})
        return attrs
