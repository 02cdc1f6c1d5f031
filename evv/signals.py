# evv/signals.py
import logging
from concurrent.futures import ThreadPoolExecutor

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.dispatch import Signal, receiver

from .exceptions import NotificationError
from .services.notification_service import NotificationService

logger = logging.getLogger(__name__)

# Sent inside the clock-in transaction with shift, actor and decision kwargs.
shift_clocked_in = Signal()

# HTTP notices run here so a slow notification API never holds up the response
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="clock-in-notices")


def _tenant_admin_ids(business_id):
    User = get_user_model()
    return [
        str(pk) for pk in
        User.objects.filter(business_id=business_id, role='admin', is_active=True).values_list('pk', flat=True)
    ]


def _deliver_clock_in_notices(shift_id, recipients, message, priority):
    service = NotificationService()
    for recipient in recipients:
        try:
            service.notify(
                recipient=recipient,
                message=message,
                priority=priority,
                related_shift_id=shift_id,
                title="Caregiver clocked in",
            )
        except NotificationError as e:
            logger.warning(f"Clock-in notice for shift {shift_id} to admin {recipient} failed: {e}")
        except Exception:
            logger.exception(f"Unexpected error sending clock-in notice for shift {shift_id} to admin {recipient}")


def _dispatch_clock_in_notices(shift_id, business_id, message, priority):
    """
    Runs after the clock-in commits. Recipients are resolved here, on the
    request thread, and the HTTP calls are handed to the executor unless
    NOTIFICATION_ASYNC is off.
    """
    try:
        recipients = _tenant_admin_ids(business_id)
    except Exception:
        logger.exception(f"Could not resolve admins to notify for shift {shift_id}")
        return
    if not recipients:
        return

    if getattr(settings, 'NOTIFICATION_ASYNC', True):
        _executor.submit(_deliver_clock_in_notices, shift_id, recipients, message, priority)
    else:
        _deliver_clock_in_notices(shift_id, recipients, message, priority)


@receiver(shift_clocked_in)
def notify_admins_of_clock_in(sender, shift, actor, decision=None, **kwargs):
    """
    Tell the tenant's admins that a visit started, once the clock-in commits.
    """
    forced = bool(decision and decision.forced)
    message = f"{shift.caregiver_name} clocked in for {shift.client_name}"
    if forced:
        message += " (outside geofence, override used)"
    priority = "high" if forced else "low"

    shift_id, business_id = shift.pk, shift.business_id
    transaction.on_commit(
        lambda: _dispatch_clock_in_notices(shift_id, business_id, message, priority),
        robust=True,
    )
