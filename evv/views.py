# views.py
import logging
from datetime import datetime, time, timedelta

from django.db import transaction
from django.utils import timezone
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .actors import Actor
from .exceptions import (
    ActionNotPermitted,
    ClockInNotAllowed,
    EVVError,
    InvalidCoordinate,
    InvalidTransition,
    LocationUnavailable,
    ShiftNotFound,
)
from .models import Caregiver, Shift, ShiftStatus
from .serializers import (
    ClockEventSerializer,
    ShiftQuerySerializer,
    ShiftScheduleSerializer,
    ShiftSerializer,
    TransitionReasonSerializer,
)
from .services.conflicts import caregiver_conflicts, conflicts_for_proposed
from .services.location import reading_from_payload
from .services.visit_state_machine import VisitStateMachine

logger = logging.getLogger(__name__)


# Helpers
def evv_error_response(exc):
    """Translate a lifecycle error into an HTTP response."""
    body = {"error": str(exc)}

    if isinstance(exc, ShiftNotFound):
        return Response(body, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, ActionNotPermitted):
        return Response(body, status=status.HTTP_403_FORBIDDEN)
    if isinstance(exc, InvalidTransition):
        body["current_status"] = exc.current_status
        return Response(body, status=status.HTTP_409_CONFLICT)
    if isinstance(exc, ClockInNotAllowed):
        body["opens_at"] = exc.opens_at
        return Response(body, status=status.HTTP_409_CONFLICT)
    if isinstance(exc, LocationUnavailable):
        body.update({"reason": exc.reason, "retry": True})
        return Response(body, status=status.HTTP_422_UNPROCESSABLE_ENTITY)
    if isinstance(exc, InvalidCoordinate):
        return Response(body, status=status.HTTP_400_BAD_REQUEST)
    return Response(body, status=status.HTTP_400_BAD_REQUEST)


def server_error_response(message, exc):
    return Response({
        "error": message,
        "details": str(exc),
        "retry": True,
    }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def tenant_shifts(user):
    queryset = Shift.objects.filter(business_id=user.business_id).select_related('client', 'caregiver')
    actor = Actor.from_user(user)
    if not actor.can_manage_shifts:
        # Caregivers only see their own schedule
        queryset = queryset.filter(caregiver_id=actor.caregiver_id)
    return queryset


def day_bounds(filters):
    """Aware datetimes covering date_from 00:00 through the end of date_to."""
    date_from = filters.get('date_from')
    date_to = filters.get('date_to')
    start = timezone.make_aware(datetime.combine(date_from, time.min)) if date_from else None
    end = timezone.make_aware(datetime.combine(date_to + timedelta(days=1), time.min)) if date_to else None
    return start, end


def conflict_summary(shift):
    return [
        {
            "shift_id": other.pk,
            "start_time": other.start_time,
            "end_time": other.end_time,
            "client_name": other.client_name,
        }
        for other in conflicts_for_proposed(shift)
    ]


# -----------------------
# SCHEDULING
# -----------------------
class ShiftListView(APIView):
    def get(self, request):
        query = ShiftQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)
        filters = query.validated_data

        try:
            shifts = tenant_shifts(request.user)

            if 'caregiver' in filters:
                shifts = shifts.filter(caregiver_id=filters['caregiver'])
            if 'status' in filters:
                shifts = shifts.filter(status=filters['status'])

            start, end = day_bounds(filters)
            if start:
                shifts = shifts.filter(start_time__gte=start)
            if end:
                shifts = shifts.filter(start_time__lt=end)

            return Response(ShiftSerializer(shifts, many=True).data)
        except Exception as e:
            logger.exception("Error fetching shifts")
            return server_error_response("Failed to fetch shifts", e)

    def post(self, request):
        actor = Actor.from_user(request.user)
        if not actor.can_manage_shifts:
            return Response({"error": "Only schedulers can create shifts"}, status=status.HTTP_403_FORBIDDEN)

        serializer = ShiftScheduleSerializer(data=request.data, context={'business_id': actor.business_id})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            shift = serializer.save(business_id=actor.business_id)
            conflicts = conflict_summary(shift)
            if conflicts:
                logger.warning(
                    f"Shift {shift.pk} for caregiver {shift.caregiver_id} overlaps "
                    f"{[c['shift_id'] for c in conflicts]}"
                )
            logger.info(f"Shift {shift.pk} scheduled by {actor}")
            return Response({
                "shift": ShiftSerializer(shift).data,
                "conflicts": conflicts,
            }, status=status.HTTP_201_CREATED)
        except Exception as e:
            logger.exception("Error creating shift")
            return server_error_response("Failed to create shift", e)


class ShiftDetailView(APIView):
    def get(self, request, pk):
        shift = tenant_shifts(request.user).filter(pk=pk).first()
        if shift is None:
            return evv_error_response(ShiftNotFound(pk))
        return Response(ShiftSerializer(shift).data)

    def patch(self, request, pk):
        actor = Actor.from_user(request.user)
        if not actor.can_manage_shifts:
            return evv_error_response(ActionNotPermitted(pk, actor.user_id, 'reschedule'))

        try:
            with transaction.atomic():
                # Locked re-read so a clock-in cannot land between the check and the write
                shift = tenant_shifts(request.user).select_for_update(of=('self',)).filter(pk=pk).first()
                if shift is None:
                    raise ShiftNotFound(pk)
                if shift.status != ShiftStatus.SCHEDULED:
                    raise InvalidTransition(shift.pk, shift.status, 'reschedule')

                serializer = ShiftScheduleSerializer(
                    shift, data=request.data, partial=True, context={'business_id': actor.business_id}
                )
                if not serializer.is_valid():
                    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

                changed = list(serializer.validated_data)
                for attr, value in serializer.validated_data.items():
                    setattr(shift, attr, value)
                shift.add_visit_change(actor, 'reschedule', timezone.now(), memo=", ".join(changed))
                shift.save(update_fields=changed + ['visit_changes', 'updated_at'])
        except EVVError as e:
            return evv_error_response(e)
        except Exception as e:
            logger.exception(f"Error updating shift {pk}")
            return server_error_response("Failed to update shift", e)

        return Response({
            "shift": ShiftSerializer(shift).data,
            "conflicts": conflict_summary(shift),
        })


# -----------------------
# LIFECYCLE TRANSITIONS
# -----------------------
class ClockEventView(APIView):
    """Shared handling for clock-in and clock-out."""

    transition = None
    label = None

    def post(self, request, pk):
        serializer = ClockEventSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            reading = reading_from_payload(data)
            machine = VisitStateMachine()
            result = getattr(machine, self.transition)(
                pk, Actor.from_user(request.user), reading, force=data.get('force', False)
            )
        except EVVError as e:
            logger.info(f"{self.label} rejected for shift {pk}: {e}")
            return evv_error_response(e)
        except Exception as e:
            logger.exception(f"Error during {self.label} for shift {pk}")
            return server_error_response(f"Failed to {self.label}", e)

        if not result.accepted:
            decision = result.decision
            return Response({
                "error": (
                    f"You are {decision.distance_miles:.2f} miles from the client's location. "
                    f"Resubmit with force=true to {self.label} anyway."
                ),
                "requires_override": True,
                "decision": decision.as_dict(),
            }, status=status.HTTP_428_PRECONDITION_REQUIRED)

        return Response({
            "shift": ShiftSerializer(result.shift).data,
            "decision": result.decision.as_dict(),
        })


class ClockInView(ClockEventView):
    transition = 'clock_in'
    label = 'clock in'


class ClockOutView(ClockEventView):
    transition = 'clock_out'
    label = 'clock out'


class ReasonTransitionView(APIView):
    transition = None
    label = None

    def post(self, request, pk):
        serializer = TransitionReasonSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            machine = VisitStateMachine()
            result = getattr(machine, self.transition)(
                pk, Actor.from_user(request.user), reason=serializer.validated_data['reason']
            )
        except EVVError as e:
            return evv_error_response(e)
        except Exception as e:
            logger.exception(f"Error during {self.label} for shift {pk}")
            return server_error_response(f"Failed to {self.label} shift", e)

        return Response({"shift": ShiftSerializer(result.shift).data})


class CancelShiftView(ReasonTransitionView):
    transition = 'cancel'
    label = 'cancel'


class MarkMissedView(ReasonTransitionView):
    transition = 'mark_missed'
    label = 'mark missed'


# -----------------------
# CONFLICT REPORT
# -----------------------
class CaregiverConflictsView(APIView):
    def get(self, request, pk):
        actor = Actor.from_user(request.user)
        caregiver = Caregiver.objects.filter(pk=pk, business_id=actor.business_id).first()
        if caregiver is None:
            return Response({"error": f"Caregiver {pk} not found"}, status=status.HTTP_404_NOT_FOUND)
        if not actor.can_manage_shifts and actor.caregiver_id != caregiver.pk:
            return Response({"error": "Not allowed to view this schedule"}, status=status.HTTP_403_FORBIDDEN)

        query = ShiftQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            start, end = day_bounds(query.validated_data)
            pairs = caregiver_conflicts(caregiver.pk, actor.business_id, start=start, end=end)
            return Response({
                "caregiver_id": caregiver.pk,
                "count": len(pairs),
                "conflicts": [pair.as_dict() for pair in pairs],
            })
        except Exception as e:
            logger.exception(f"Error computing conflicts for caregiver {pk}")
            return server_error_response("Failed to compute conflicts", e)
