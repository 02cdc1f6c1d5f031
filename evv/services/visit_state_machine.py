"""
Visit lifecycle transitions.

    scheduled --clock in--> in_progress --clock out--> completed
    scheduled --cancel--> cancelled
    scheduled | in_progress --mark missed--> missed

Each transition re-reads and locks one Shift row, checks its guard, and
writes only the columns it owns in a single atomic update.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from asgiref.sync import sync_to_async
from django.db import transaction
from django.utils import timezone

from ..exceptions import (
    ActionNotPermitted,
    ClockInNotAllowed,
    InvalidTransition,
    NotShiftCaregiver,
    ShiftNotFound,
)
from ..models import EVVStatus, GeofenceStatus, Shift, ShiftStatus, VerificationMethod
from ..policy import EVVPolicy
from ..signals import shift_clocked_in
from .billing import BillingUnitCalculator
from .location import ClientLocationLookup, acquire_reading
from .verifier import EVVVerifier

logger = logging.getLogger(__name__)

SEVEN_PLACES = Decimal("0.0000001")

CLOCK_IN_FIELDS = [
    'status',
    'check_in_time',
    'check_in_latitude',
    'check_in_longitude',
    'check_in_accuracy',
    'checked_in_by',
    'geofence_status',
    'geofence_distance_miles',
    'evv_status',
    'evv_exceptions',
    'verification_method',
    'late_arrival_minutes',
    'visit_changes',
    'updated_at',
]

CLOCK_OUT_FIELDS = [
    'status',
    'check_out_time',
    'check_out_latitude',
    'check_out_longitude',
    'check_out_accuracy',
    'checked_out_by',
    'geofence_status',
    'evv_status',
    'evv_exceptions',
    'early_departure_minutes',
    'actual_hours',
    'units',
    'billing_code',
    'modifier',
    'billing_needs_review',
    'visit_changes',
    'updated_at',
]

STATUS_ONLY_FIELDS = ['status', 'visit_changes', 'updated_at']


@dataclass(frozen=True)
class TransitionResult:
    shift: Shift
    event: str
    accepted: bool = True
    decision: Optional[Any] = None

    @property
    def requires_override(self):
        return bool(self.decision and self.decision.requires_override)


def _coordinate(value):
    return Decimal(str(value)).quantize(SEVEN_PLACES)


def _whole_minutes(delta):
    return int(round(delta.total_seconds() / 60))


class VisitStateMachine:
    def __init__(self, policy=None, verifier=None, calculator=None, location_lookup=None):
        self.policy = policy or EVVPolicy.from_settings()
        self.verifier = verifier or EVVVerifier(self.policy)
        self.calculator = calculator or BillingUnitCalculator(self.policy)
        self.location_lookup = location_lookup or ClientLocationLookup(self.policy)

    # -----------------------
    # HELPERS
    # -----------------------
    def _load_for_update(self, shift_id, actor):
        try:
            return Shift.objects.select_for_update().get(pk=shift_id, business_id=actor.business_id)
        except Shift.DoesNotExist:
            raise ShiftNotFound(shift_id)

    def _check_caregiver(self, shift, actor, event):
        if actor.can_manage_shifts:
            return
        if actor.caregiver_id is None or actor.caregiver_id != shift.caregiver_id:
            raise NotShiftCaregiver(shift.pk, actor.user_id, event)

    def _check_manager(self, shift, actor, event):
        if not actor.can_manage_shifts:
            raise ActionNotPermitted(shift.pk, actor.user_id, event)

    def _evaluate(self, shift, reading, force, event):
        client_location, used_fallback = self.location_lookup.lookup(shift.client)
        return self.verifier.evaluate(
            reading,
            client_location,
            force=force,
            event=event,
            used_fallback=used_fallback,
        )

    # -----------------------
    # TRANSITIONS
    # -----------------------
    def clock_in(self, shift_id, actor, reading, force=False, now=None,
                 verification_method=VerificationMethod.GPS):
        now = now or timezone.now()

        with transaction.atomic():
            shift = self._load_for_update(shift_id, actor)
            self._check_caregiver(shift, actor, 'clock in')

            if shift.status != ShiftStatus.SCHEDULED:
                raise InvalidTransition(shift.pk, shift.status, 'clock in')

            opens_at = shift.start_time - self.policy.clock_in_window
            if now < opens_at:
                raise ClockInNotAllowed(shift.pk, opens_at)

            decision = self._evaluate(shift, reading, force, 'Clock-in')
            if not decision.accepted:
                return TransitionResult(shift=shift, event='clock_in', accepted=False, decision=decision)

            shift.status = ShiftStatus.IN_PROGRESS
            shift.check_in_time = now
            shift.check_in_latitude = _coordinate(reading.latitude)
            shift.check_in_longitude = _coordinate(reading.longitude)
            shift.check_in_accuracy = reading.accuracy
            shift.checked_in_by = actor.user_id
            shift.geofence_status = decision.geofence_status
            if decision.distance_miles is not None:
                shift.geofence_distance_miles = Decimal(str(round(decision.distance_miles, 3)))
            shift.evv_status = decision.evv_status
            for reason in decision.exceptions:
                shift.add_evv_exception(reason)
            shift.verification_method = verification_method

            if now > shift.start_time:
                shift.late_arrival_minutes = _whole_minutes(now - shift.start_time)

            memo = 'Clock-in outside geofence with override' if decision.forced and \
                decision.geofence_status == GeofenceStatus.OUT_OF_RANGE else ''
            shift.add_visit_change(actor, 'clock_in', now, memo=memo)
            shift.save(update_fields=CLOCK_IN_FIELDS)

            for receiver, response in shift_clocked_in.send_robust(
                sender=Shift, shift=shift, actor=actor, decision=decision
            ):
                if isinstance(response, Exception):
                    logger.warning(f"shift_clocked_in receiver {receiver} failed: {response}")

        logger.info(
            f"Shift {shift.pk} clocked in by {actor} "
            f"(geofence={shift.geofence_status}, evv={shift.evv_status})"
        )
        return TransitionResult(shift=shift, event='clock_in', decision=decision)

    def clock_out(self, shift_id, actor, reading, force=False, now=None):
        now = now or timezone.now()

        with transaction.atomic():
            shift = self._load_for_update(shift_id, actor)
            self._check_caregiver(shift, actor, 'clock out')

            if shift.status != ShiftStatus.IN_PROGRESS:
                raise InvalidTransition(shift.pk, shift.status, 'clock out')

            decision = self._evaluate(shift, reading, force, 'Clock-out')
            if not decision.accepted:
                return TransitionResult(shift=shift, event='clock_out', accepted=False, decision=decision)

            shift.status = ShiftStatus.COMPLETED
            shift.check_out_time = now
            shift.check_out_latitude = _coordinate(reading.latitude)
            shift.check_out_longitude = _coordinate(reading.longitude)
            shift.check_out_accuracy = reading.accuracy
            shift.checked_out_by = actor.user_id

            # Status reflects the worst reading of the visit
            if decision.geofence_status == GeofenceStatus.OUT_OF_RANGE:
                shift.geofence_status = GeofenceStatus.OUT_OF_RANGE
            for reason in decision.exceptions:
                shift.add_evv_exception(reason)

            billing = self.calculator.calculate_for_shift(shift)
            shift.actual_hours = billing.actual_hours
            shift.units = billing.units
            shift.billing_code = billing.billing_code
            shift.modifier = billing.modifier
            shift.billing_needs_review = billing.needs_review

            for reason in self._timing_exceptions(shift, now, billing.raw_hours):
                shift.add_evv_exception(reason)

            shift.evv_status = EVVStatus.EXCEPTION if shift.evv_exceptions else EVVStatus.VERIFIED

            memo = 'Clock-out outside geofence with override' if decision.forced and \
                decision.geofence_status == GeofenceStatus.OUT_OF_RANGE else ''
            shift.add_visit_change(actor, 'clock_out', now, memo=memo)
            shift.save(update_fields=CLOCK_OUT_FIELDS)

        logger.info(
            f"Shift {shift.pk} clocked out by {actor}: {shift.actual_hours}h, "
            f"{shift.units} units, evv={shift.evv_status}"
        )
        return TransitionResult(shift=shift, event='clock_out', decision=decision)

    def _timing_exceptions(self, shift, now, raw_hours):
        # Thresholds apply to the same whole minutes that are recorded on the shift
        exceptions = []

        if shift.check_in_time and shift.check_in_time > shift.start_time:
            late_minutes = _whole_minutes(shift.check_in_time - shift.start_time)
            tolerance = _whole_minutes(self.policy.late_arrival_tolerance)
            if late_minutes > tolerance:
                exceptions.append(f"Late arrival (>{tolerance} min)")

        if now < shift.end_time:
            shift.early_departure_minutes = _whole_minutes(shift.end_time - now)
            tolerance = _whole_minutes(self.policy.early_departure_tolerance)
            if shift.early_departure_minutes > tolerance:
                exceptions.append(f"Early departure (>{tolerance} min)")

        if shift.authorized_hours is not None and shift.check_in_time:
            if abs(raw_hours - Decimal(shift.authorized_hours)) > self.policy.authorized_hours_tolerance:
                exceptions.append("Duration mismatch with authorization")

        return exceptions

    def cancel(self, shift_id, actor, reason='', now=None):
        now = now or timezone.now()

        with transaction.atomic():
            shift = self._load_for_update(shift_id, actor)
            self._check_manager(shift, actor, 'cancel')

            if shift.status != ShiftStatus.SCHEDULED:
                raise InvalidTransition(shift.pk, shift.status, 'cancel')

            shift.status = ShiftStatus.CANCELLED
            shift.add_visit_change(actor, 'cancel', now, memo=reason)
            shift.save(update_fields=STATUS_ONLY_FIELDS)

        logger.info(f"Shift {shift.pk} cancelled by {actor}")
        return TransitionResult(shift=shift, event='cancel')

    def mark_missed(self, shift_id, actor, reason='', now=None):
        now = now or timezone.now()

        with transaction.atomic():
            shift = self._load_for_update(shift_id, actor)
            self._check_manager(shift, actor, 'mark missed')

            if shift.status not in (ShiftStatus.SCHEDULED, ShiftStatus.IN_PROGRESS):
                raise InvalidTransition(shift.pk, shift.status, 'mark missed')

            shift.status = ShiftStatus.MISSED
            shift.add_visit_change(actor, 'mark_missed', now, memo=reason)
            shift.save(update_fields=STATUS_ONLY_FIELDS)

        logger.info(f"Shift {shift.pk} marked missed by {actor}")
        return TransitionResult(shift=shift, event='mark_missed')


async def clock_in_with_device(machine, shift_id, actor, fetch_position, force=False, timeout=None):
    """
    Acquire a GPS fix, then clock in.

    Acquisition and the database write are separate steps: if the device
    fails or times out, LocationUnavailable is raised and nothing is written.
    """
    reading = await acquire_reading(fetch_position, timeout=timeout, policy=machine.policy)
    return await sync_to_async(machine.clock_in)(shift_id, actor, reading, force=force)
