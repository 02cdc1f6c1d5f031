from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from ..models import Shift, ShiftStatus


@dataclass(frozen=True)
class ConflictPair:
    first: Any
    second: Any

    @property
    def caregiver_id(self):
        return self.first.caregiver_id

    def as_dict(self):
        return {
            'caregiver_id': self.caregiver_id,
            'first_shift_id': self.first.pk,
            'second_shift_id': self.second.pk,
            'overlap_start': max(self.first.start_time, self.second.start_time),
            'overlap_end': min(self.first.end_time, self.second.end_time),
        }


def overlaps(a, b):
    # Half-open windows: shifts that only touch at an instant do not overlap
    return a.start_time < b.end_time and b.start_time < a.end_time


def _active(shifts):
    return [s for s in shifts if s.status != ShiftStatus.CANCELLED]


def find_conflicts(shifts):
    """
    Every overlapping pair among non-cancelled shifts, per caregiver.

    Sorts each caregiver's shifts by start and sweeps, keeping only the
    shifts still running at the current start time.
    """
    by_caregiver = defaultdict(list)
    for shift in _active(shifts):
        by_caregiver[shift.caregiver_id].append(shift)

    pairs = []
    for caregiver_shifts in by_caregiver.values():
        caregiver_shifts.sort(key=lambda s: (s.start_time, s.end_time))
        running = []
        for shift in caregiver_shifts:
            running = [r for r in running if r.end_time > shift.start_time]
            pairs.extend(ConflictPair(r, shift) for r in running)
            running.append(shift)
    return pairs


def conflicts_with(candidate, shifts):
    """Shifts overlapping a proposed (possibly unsaved) shift."""
    if candidate.status == ShiftStatus.CANCELLED:
        return []
    return [
        s for s in _active(shifts)
        if s.caregiver_id == candidate.caregiver_id
        and (candidate.pk is None or s.pk != candidate.pk)
        and overlaps(candidate, s)
    ]


def caregiver_conflicts(caregiver_id, business_id, start=None, end=None):
    shifts = Shift.objects.filter(caregiver_id=caregiver_id, business_id=business_id).exclude(
        status=ShiftStatus.CANCELLED
    )
    if start is not None:
        shifts = shifts.filter(end_time__gt=start)
    if end is not None:
        shifts = shifts.filter(start_time__lt=end)
    return find_conflicts(list(shifts))


def conflicts_for_proposed(candidate):
    """Existing shifts of the candidate's caregiver that overlap it."""
    existing = Shift.objects.filter(
        caregiver_id=candidate.caregiver_id,
        business_id=candidate.business_id,
        start_time__lt=candidate.end_time,
        end_time__gt=candidate.start_time,
    ).exclude(status=ShiftStatus.CANCELLED)
    return conflicts_with(candidate, list(existing))
