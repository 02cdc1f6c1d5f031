from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from .exceptions import ImmutableFieldError
from .geo import GeofenceReading


# -----------------------
# CLIENT MODEL
# -----------------------
class Client(models.Model):
    client_id = models.CharField(max_length=50)
    business_id = models.CharField(max_length=64, db_index=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)

    # Service address
    address_line1 = models.CharField(max_length=255, blank=True, null=True)
    address_line2 = models.CharField(max_length=255, blank=True, null=True)
    city = models.CharField(max_length=100, blank=True, null=True)
    state = models.CharField(max_length=2, blank=True, null=True)
    zip_code = models.CharField(
        max_length=10,
        blank=True,
        null=True,
        validators=[RegexValidator(r'^\d{5}(-\d{4})?$', 'Invalid ZIP code format')]
    )

    # Geofence center, resolved upstream from the service address
    location_latitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        blank=True,
        null=True,
        validators=[MinValueValidator(-90), MaxValueValidator(90)],
        help_text="Latitude coordinate for service location"
    )
    location_longitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        blank=True,
        null=True,
        validators=[MinValueValidator(-180), MaxValueValidator(180)],
        help_text="Longitude coordinate for service location"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'evv_clients'
        ordering = ['last_name', 'first_name']
        constraints = [
            models.UniqueConstraint(fields=['business_id', 'client_id'], name='unique_client_per_business'),
        ]

    def __str__(self):
        return f"{self.first_name} {self.last_name} ({self.client_id})"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    @property
    def has_location(self):
        return self.location_latitude is not None and self.location_longitude is not None


# -----------------------
# CAREGIVER MODEL
# -----------------------
class Caregiver(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='caregiver_profile'
    )
    employee_id = models.CharField(max_length=50)
    business_id = models.CharField(max_length=64, db_index=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    phone = models.CharField(
        max_length=10,
        blank=True,
        validators=[RegexValidator(r'^\d{10}$', "Phone number must be 10 digits")]
    )

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('on_leave', 'On Leave'),
        ('terminated', 'Terminated'),
    ]
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['last_name', 'first_name']
        constraints = [
            models.UniqueConstraint(fields=['business_id', 'employee_id'], name='unique_caregiver_per_business'),
        ]

    def __str__(self):
        return f"{self.first_name} {self.last_name} ({self.employee_id})"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


# -----------------------
# SHIFT / VISIT MODEL
# -----------------------
class ShiftStatus(models.TextChoices):
    SCHEDULED = 'scheduled', 'Scheduled'
    IN_PROGRESS = 'in_progress', 'In Progress'
    COMPLETED = 'completed', 'Completed'
    MISSED = 'missed', 'Missed'
    CANCELLED = 'cancelled', 'Cancelled'


TERMINAL_STATUSES = (ShiftStatus.COMPLETED, ShiftStatus.MISSED, ShiftStatus.CANCELLED)


class GeofenceStatus(models.TextChoices):
    NOT_CHECKED = 'not_checked', 'Not Checked'
    IN_RANGE = 'in_range', 'Within Geofence'
    OUT_OF_RANGE = 'out_of_range', 'Outside Geofence'


class EVVStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    VERIFIED = 'verified', 'Verified'
    EXCEPTION = 'exception', 'Exception'
    REJECTED = 'rejected', 'Rejected'


class VerificationMethod(models.TextChoices):
    GPS = 'gps', 'GPS'
    APP_LOGIN = 'app_login', 'App Login'
    TELEPHONY = 'telephony', 'Telephony'
    MANUAL = 'manual', 'Manual'


class Shift(models.Model):
    business_id = models.CharField(max_length=64, db_index=True)

    caregiver = models.ForeignKey(Caregiver, on_delete=models.PROTECT, related_name='shifts')
    client = models.ForeignKey(Client, on_delete=models.PROTECT, related_name='shifts')
    # Display copies; the foreign keys are authoritative
    caregiver_name = models.CharField(max_length=200, blank=True)
    client_name = models.CharField(max_length=200, blank=True)

    start_time = models.DateTimeField(help_text="Scheduled start time (UTC)")
    end_time = models.DateTimeField(help_text="Scheduled end time (UTC)")
    authorized_hours = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
        help_text="Hours authorized for this visit by the payer"
    )

    status = models.CharField(
        max_length=20,
        choices=ShiftStatus.choices,
        default=ShiftStatus.SCHEDULED,
        db_index=True
    )

    # EVV - check-in
    check_in_time = models.DateTimeField(null=True, blank=True)
    check_in_latitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    check_in_longitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    check_in_accuracy = models.FloatField(null=True, blank=True, help_text="GPS accuracy radius in meters")
    checked_in_by = models.CharField(max_length=64, blank=True)

    # EVV - check-out
    check_out_time = models.DateTimeField(null=True, blank=True)
    check_out_latitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    check_out_longitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    check_out_accuracy = models.FloatField(null=True, blank=True, help_text="GPS accuracy radius in meters")
    checked_out_by = models.CharField(max_length=64, blank=True)

    # EVV - verification
    geofence_status = models.CharField(
        max_length=20,
        choices=GeofenceStatus.choices,
        default=GeofenceStatus.NOT_CHECKED
    )
    geofence_distance_miles = models.DecimalField(
        max_digits=9,
        decimal_places=3,
        null=True,
        blank=True,
        help_text="Distance from client location in miles"
    )
    evv_status = models.CharField(
        max_length=20,
        choices=EVVStatus.choices,
        default=EVVStatus.PENDING,
        db_index=True
    )
    evv_exceptions = models.JSONField(default=list, blank=True)
    verification_method = models.CharField(
        max_length=20,
        choices=VerificationMethod.choices,
        default=VerificationMethod.GPS
    )
    late_arrival_minutes = models.PositiveIntegerField(null=True, blank=True)
    early_departure_minutes = models.PositiveIntegerField(null=True, blank=True)

    # Billing
    actual_hours = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    units = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    billing_code = models.CharField(max_length=10, blank=True)
    modifier = models.CharField(max_length=4, blank=True)
    billing_needs_review = models.BooleanField(default=False)

    # Transition audit trail
    visit_changes = models.JSONField(default=list, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    IMMUTABLE_TIMESTAMPS = ('check_in_time', 'check_out_time')

    class Meta:
        ordering = ['-start_time']
        indexes = [
            models.Index(fields=['caregiver', 'start_time'], name='shift_caregiver_start_idx'),
            models.Index(fields=['client', 'start_time'], name='shift_client_start_idx'),
            models.Index(fields=['business_id', 'status'], name='shift_business_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(end_time__gt=F('start_time')),
                name='shift_end_after_start',
            ),
        ]

    def __str__(self):
        return f"Shift {self.pk}: {self.client_name or self.client_id} by {self.caregiver_name or self.caregiver_id}"

    def clean(self):
        super().clean()
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({'end_time': "End time must be after start time"})

    def save(self, *args, **kwargs):
        if not self.caregiver_name and self.caregiver_id:
            self.caregiver_name = self.caregiver.full_name
        if not self.client_name and self.client_id:
            self.client_name = self.client.full_name

        update_fields = kwargs.get('update_fields')
        # Partial writes only need to guard the timestamps they include
        guarded = [
            name for name in self.IMMUTABLE_TIMESTAMPS
            if update_fields is None or name in update_fields
        ]
        if self.pk and guarded:
            stored = (
                Shift.objects.filter(pk=self.pk)
                .values(*guarded)
                .first()
            )
            if stored:
                for field_name in guarded:
                    previous = stored[field_name]
                    if previous is not None and getattr(self, field_name) != previous:
                        raise ImmutableFieldError(field_name)

        super().save(*args, **kwargs)

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def check_in_gps(self):
        if self.check_in_latitude is None or self.check_in_longitude is None:
            return None
        return GeofenceReading(
            latitude=self.check_in_latitude,
            longitude=self.check_in_longitude,
            accuracy=self.check_in_accuracy,
            measured_at=self.check_in_time,
        )

    @property
    def check_out_gps(self):
        if self.check_out_latitude is None or self.check_out_longitude is None:
            return None
        return GeofenceReading(
            latitude=self.check_out_latitude,
            longitude=self.check_out_longitude,
            accuracy=self.check_out_accuracy,
            measured_at=self.check_out_time,
        )

    @property
    def duration_hours(self):
        """Actual worked hours, 0 until both timestamps are recorded."""
        if self.check_in_time and self.check_out_time:
            return (self.check_out_time - self.check_in_time).total_seconds() / 3600
        return 0.0

    def add_evv_exception(self, reason):
        if not self.evv_exceptions:
            self.evv_exceptions = []
        if reason not in self.evv_exceptions:
            self.evv_exceptions.append(reason)

    def add_visit_change(self, change_made_by, event, when, memo=''):
        """Append a transition record to the audit trail."""
        change_data = {
            'change_made_by': str(change_made_by),
            'change_date_time': when.strftime("%Y-%m-%dT%H:%M:%SZ"),
            'event': event,
            'memo': memo,
        }
        if not self.visit_changes:
            self.visit_changes = []
        self.visit_changes.append(change_data)