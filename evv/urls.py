# urls.py
from django.urls import path

from .views import (
    CancelShiftView,
    CaregiverConflictsView,
    ClockInView,
    ClockOutView,
    MarkMissedView,
    ShiftDetailView,
    ShiftListView,
)

urlpatterns = [
    # ------------------------
    # SCHEDULING
    # ------------------------
    path("shifts/", ShiftListView.as_view(), name="shifts"),
    path("shifts/<int:pk>/", ShiftDetailView.as_view(), name="shift-detail"),
    path("caregivers/<int:pk>/conflicts/", CaregiverConflictsView.as_view(), name="caregiver-conflicts"),

    # ------------------------
    # VISIT LIFECYCLE
    # ------------------------
    path("shifts/<int:pk>/clock-in/", ClockInView.as_view(), name="shift-clock-in"),
    path("shifts/<int:pk>/clock-out/", ClockOutView.as_view(), name="shift-clock-out"),
    path("shifts/<int:pk>/cancel/", CancelShiftView.as_view(), name="shift-cancel"),
    path("shifts/<int:pk>/missed/", MarkMissedView.as_view(), name="shift-missed"),
]
