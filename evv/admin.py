# admin.py
from django.contrib import admin, messages
from django.contrib.admin.utils import flatten_fieldsets
from django.db import transaction
from django.utils import timezone
from django.utils.html import format_html, format_html_join

from .actors import Actor
from .exceptions import EVVError
from .models import Caregiver, Client, EVVStatus, Shift, ShiftStatus
from .services.visit_state_machine import VisitStateMachine


# ------------------------------
# CLIENT ADMIN
# ------------------------------
@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = (
        "client_id",
        "first_name",
        "last_name",
        "business_id",
        "city",
        "has_location",
    )
    search_fields = ("client_id", "first_name", "last_name", "address_line1")
    list_filter = ("business_id", "state")
    ordering = ("client_id",)

    @admin.display(boolean=True, description="Geocoded")
    def has_location(self, obj):
        return obj.has_location


# ------------------------------
# CAREGIVER ADMIN
# ------------------------------
@admin.register(Caregiver)
class CaregiverAdmin(admin.ModelAdmin):
    list_display = ("employee_id", "first_name", "last_name", "business_id", "status", "user")
    search_fields = ("employee_id", "first_name", "last_name", "email")
    list_filter = ("status", "business_id")
    ordering = ("employee_id",)
    raw_id_fields = ("user",)


# ------------------------------
# SHIFT ADMIN
# ------------------------------
@admin.register(Shift)
class ShiftAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "client_name",
        "caregiver_name",
        "status_display",
        "schedule_date",
        "duration_display",
        "evv_status_display",
        "units",
    )

    list_filter = (
        "status",
        "evv_status",
        "geofence_status",
        "billing_needs_review",
        "business_id",
        ("start_time", admin.DateFieldListFilter),
    )

    search_fields = (
        "client__first_name",
        "client__last_name",
        "client__client_id",
        "caregiver__first_name",
        "caregiver__last_name",
        "caregiver__employee_id",
    )

    ordering = ("-start_time",)

    # Check-in/out data is written only by the visit state machine
    readonly_fields = (
        "status",
        "check_in_time",
        "check_in_latitude",
        "check_in_longitude",
        "check_in_accuracy",
        "checked_in_by",
        "check_out_time",
        "check_out_latitude",
        "check_out_longitude",
        "check_out_accuracy",
        "checked_out_by",
        "geofence_status",
        "geofence_distance_miles",
        "evv_status",
        "verification_method",
        "late_arrival_minutes",
        "early_departure_minutes",
        "actual_hours",
        "units",
        "billing_needs_review",
        "formatted_exceptions",
        "formatted_visit_changes",
        "created_at",
        "updated_at",
    )

    fieldsets = (
        ('Schedule', {
            'fields': (
                'business_id',
                ('client', 'caregiver'),
                ('start_time', 'end_time'),
                'authorized_hours',
                'status',
            )
        }),
        ('Check-in', {
            'fields': (
                'check_in_time',
                ('check_in_latitude', 'check_in_longitude', 'check_in_accuracy'),
                'checked_in_by',
            ),
            'classes': ('collapse',)
        }),
        ('Check-out', {
            'fields': (
                'check_out_time',
                ('check_out_latitude', 'check_out_longitude', 'check_out_accuracy'),
                'checked_out_by',
            ),
            'classes': ('collapse',)
        }),
        ('Verification', {
            'fields': (
                ('geofence_status', 'geofence_distance_miles'),
                ('evv_status', 'verification_method'),
                ('late_arrival_minutes', 'early_departure_minutes'),
                'formatted_exceptions',
            )
        }),
        ('Billing', {
            'fields': (
                ('actual_hours', 'units'),
                ('billing_code', 'modifier'),
                'billing_needs_review',
            )
        }),
        ('Audit Information', {
            'fields': ('formatted_visit_changes', ('created_at', 'updated_at')),
            'classes': ('collapse',)
        }),
    )

    actions = ['mark_as_missed', 'cancel_shifts']

    # Fixed once the visit has started
    SCHEDULE_FIELDS = ('business_id', 'client', 'caregiver', 'start_time', 'end_time', 'authorized_hours')

    def get_readonly_fields(self, request, obj=None):
        readonly = list(super().get_readonly_fields(request, obj))
        if obj is None or obj.status == ShiftStatus.SCHEDULED:
            return readonly
        if obj.is_terminal:
            # Completed, cancelled and missed visits are a closed record
            return readonly + [
                name for name in flatten_fieldsets(self.get_fieldsets(request, obj)) if name not in readonly
            ]
        return readonly + [name for name in self.SCHEDULE_FIELDS if name not in readonly]

    def save_model(self, request, obj, form, change):
        if not change:
            super().save_model(request, obj, form, change)
            return

        with transaction.atomic():
            current = Shift.objects.select_for_update().get(pk=obj.pk)
            locked = self.get_readonly_fields(request, current)
            edited = [name for name in form.changed_data if name not in locked]
            skipped = [name for name in form.changed_data if name in locked]

            if edited:
                for name in edited:
                    setattr(current, name, getattr(obj, name))
                if 'client' in edited:
                    current.client_name = current.client.full_name
                    edited.append('client_name')
                if 'caregiver' in edited:
                    current.caregiver_name = current.caregiver.full_name
                    edited.append('caregiver_name')
                current.add_visit_change(
                    Actor.from_user(request.user), 'admin_edit', timezone.now(),
                    memo=f"Changed: {', '.join(edited)}",
                )
                current.save(update_fields=edited + ['visit_changes', 'updated_at'])

        if skipped:
            self.message_user(
                request,
                f"Shift {obj.pk} is {current.get_status_display().lower()}; not saved: {', '.join(skipped)}.",
                level=messages.WARNING,
            )

    def _run_transition(self, request, queryset, method_name, label):
        machine = VisitStateMachine()
        actor = Actor.from_user(request.user)
        count = 0
        for shift in queryset:
            try:
                getattr(machine, method_name)(shift.pk, actor, reason="Admin action")
            except EVVError as e:
                self.message_user(request, str(e), level=messages.WARNING)
            else:
                count += 1
        self.message_user(request, f"{label} {count} shifts.")

    @admin.action(description="Mark selected shifts as missed")
    def mark_as_missed(self, request, queryset):
        self._run_transition(request, queryset, 'mark_missed', "Marked missed:")

    @admin.action(description="Cancel selected shifts")
    def cancel_shifts(self, request, queryset):
        self._run_transition(request, queryset, 'cancel', "Cancelled:")

    # Custom display methods for list view
    @admin.display(description='Status', ordering='status')
    def status_display(self, obj):
        color_map = {
            ShiftStatus.SCHEDULED: 'blue',
            ShiftStatus.IN_PROGRESS: 'orange',
            ShiftStatus.COMPLETED: 'green',
            ShiftStatus.CANCELLED: 'red',
            ShiftStatus.MISSED: 'gray',
        }
        return format_html(
            '<span style="color: {}; font-weight: bold;">{}</span>',
            color_map.get(obj.status, 'black'),
            obj.get_status_display()
        )

    @admin.display(description='EVV')
    def evv_status_display(self, obj):
        color_map = {
            EVVStatus.VERIFIED: 'green',
            EVVStatus.EXCEPTION: 'orange',
            EVVStatus.PENDING: 'gray',
        }
        return format_html(
            '<span style="color: {};">{}</span>',
            color_map.get(obj.evv_status, 'black'),
            obj.get_evv_status_display()
        )

    @admin.display(description='Schedule', ordering='start_time')
    def schedule_date(self, obj):
        return obj.start_time.strftime("%m/%d %H:%M") if obj.start_time else "-"

    @admin.display(description='Duration')
    def duration_display(self, obj):
        if obj.status == ShiftStatus.COMPLETED and obj.duration_hours > 0:
            return f"{obj.duration_hours:.2f}h"
        return "-"

    # Custom formatters for readonly fields
    @admin.display(description='EVV Exceptions')
    def formatted_exceptions(self, obj):
        if not obj.evv_exceptions:
            return "None"
        return format_html_join("", "{}<br>", ((reason,) for reason in obj.evv_exceptions))

    @admin.display(description='Visit Changes')
    def formatted_visit_changes(self, obj):
        if not obj.visit_changes or not isinstance(obj.visit_changes, list):
            return "No changes recorded"

        rows = [
            (
                i,
                change.get('event', 'N/A'),
                change.get('change_made_by', 'Unknown'),
                change.get('change_date_time', 'N/A'),
                f" ({change['memo']})" if change.get('memo') else "",
            )
            for i, change in enumerate(obj.visit_changes, 1)
        ]
        return format_html_join("", "{}. {} by {} at {}{}<br>", rows)

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('client', 'caregiver')
