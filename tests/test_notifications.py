"""
Tests for the notification client and the clock-in notice dispatcher.
"""
from unittest.mock import MagicMock, patch

import pytest
import requests
from django.db import DatabaseError
from freezegun import freeze_time

from accounts.models import User
from evv.exceptions import NotificationError
from evv.geo import GeofenceReading
from evv.models import Shift, ShiftStatus
from evv.services.notification_service import NotificationService
from evv.services.visit_state_machine import VisitStateMachine
from evv.signals import _deliver_clock_in_notices
from tests.conftest import BUSINESS_ID, CLIENT_LOCATION, FAR_AWAY, SHIFT_START


def fake_response(status_code=201, payload=b'{"id": "n-1"}'):
    response = MagicMock()
    response.status_code = status_code
    response.content = payload
    response.text = payload.decode()
    response.json.return_value = {"id": "n-1"}
    return response


class TestNotificationService:
    def test_unconfigured_service_skips_the_request(self):
        service = NotificationService(base_url='')

        with patch('evv.services.notification_service.requests.post') as post:
            assert service.notify('42', 'hello') is None
        post.assert_not_called()

    def test_posts_notification(self):
        service = NotificationService(base_url='https://notify.test/api/', api_key='secret', timeout=3)

        with patch('evv.services.notification_service.requests.post', return_value=fake_response()) as post:
            result = service.notify('42', 'Carla clocked in', priority='high', related_shift_id=7)

        assert result == {"id": "n-1"}
        args, kwargs = post.call_args
        assert args[0] == 'https://notify.test/api/notifications'
        assert kwargs['json']['recipient'] == '42'
        assert kwargs['json']['priority'] == 'high'
        assert kwargs['json']['related_shift_id'] == 7
        assert kwargs['headers']['Authorization'] == 'Bearer secret'
        assert kwargs['timeout'] == 3

    def test_empty_body_is_tolerated(self):
        service = NotificationService(base_url='https://notify.test')

        with patch('evv.services.notification_service.requests.post', return_value=fake_response(204, b'')):
            assert service.notify('42', 'hello') == {"message": "Empty response received"}

    def test_http_error_raises(self):
        service = NotificationService(base_url='https://notify.test')

        with patch('evv.services.notification_service.requests.post', return_value=fake_response(503, b'down')):
            with pytest.raises(NotificationError):
                service.notify('42', 'hello')

    def test_network_error_raises(self):
        service = NotificationService(base_url='https://notify.test')

        with patch(
            'evv.services.notification_service.requests.post',
            side_effect=requests.exceptions.ConnectionError("refused"),
        ):
            with pytest.raises(NotificationError):
                service.notify('42', 'hello')


@pytest.mark.django_db
class TestClockInNotices:
    def clock_in(self, shift, actor, point, force=False):
        reading = GeofenceReading(latitude=point[0], longitude=point[1])
        return VisitStateMachine().clock_in(shift.pk, actor, reading, force=force, now=SHIFT_START)

    def test_admins_notified_after_commit(
        self, shift, caregiver_actor, admin_user, django_capture_on_commit_callbacks
    ):
        with patch('evv.signals.NotificationService') as service_class:
            with django_capture_on_commit_callbacks(execute=True) as callbacks:
                self.clock_in(shift, caregiver_actor, CLIENT_LOCATION)

        assert len(callbacks) == 1
        service_class.return_value.notify.assert_called_once()
        kwargs = service_class.return_value.notify.call_args.kwargs
        assert kwargs['recipient'] == str(admin_user.pk)
        assert kwargs['priority'] == 'low'
        assert kwargs['related_shift_id'] == shift.pk

    def test_forced_clock_in_is_high_priority(
        self, shift, caregiver_actor, admin_user, django_capture_on_commit_callbacks
    ):
        with patch('evv.signals.NotificationService') as service_class:
            with django_capture_on_commit_callbacks(execute=True):
                self.clock_in(shift, caregiver_actor, FAR_AWAY, force=True)

        kwargs = service_class.return_value.notify.call_args.kwargs
        assert kwargs['priority'] == 'high'
        assert 'override used' in kwargs['message']

    def test_rejected_clock_in_sends_nothing(
        self, shift, caregiver_actor, admin_user, django_capture_on_commit_callbacks
    ):
        with patch('evv.signals.NotificationService') as service_class:
            with django_capture_on_commit_callbacks(execute=True) as callbacks:
                self.clock_in(shift, caregiver_actor, FAR_AWAY)

        assert callbacks == []
        service_class.return_value.notify.assert_not_called()

    def test_notification_failure_does_not_undo_clock_in(
        self, shift, caregiver_actor, admin_user, django_capture_on_commit_callbacks
    ):
        with patch('evv.signals.NotificationService') as service_class:
            service_class.return_value.notify.side_effect = NotificationError("down")
            with django_capture_on_commit_callbacks(execute=True):
                result = self.clock_in(shift, caregiver_actor, CLIENT_LOCATION)

        assert result.accepted
        shift.refresh_from_db()
        assert shift.status == 'in_progress'

    def test_unexpected_error_for_one_admin_still_notifies_the_rest(
        self, shift, caregiver_actor, admin_user, django_capture_on_commit_callbacks
    ):
        User.objects.create_user(
            email='second-admin@agency.test',
            name='Bea Admin',
            password='testpass123',
            role='admin',
            business_id=BUSINESS_ID,
        )

        with patch('evv.signals.NotificationService') as service_class:
            service_class.return_value.notify.side_effect = [RuntimeError("bad payload"), {"id": "n-2"}]
            with django_capture_on_commit_callbacks(execute=True):
                self.clock_in(shift, caregiver_actor, CLIENT_LOCATION)

        assert service_class.return_value.notify.call_count == 2

    def test_notices_are_handed_to_the_executor(
        self, settings, shift, caregiver_actor, admin_user, django_capture_on_commit_callbacks
    ):
        settings.NOTIFICATION_ASYNC = True

        with patch('evv.signals._executor') as executor, patch('evv.signals.NotificationService') as service_class:
            with django_capture_on_commit_callbacks(execute=True):
                self.clock_in(shift, caregiver_actor, CLIENT_LOCATION)

        service_class.return_value.notify.assert_not_called()
        args = executor.submit.call_args.args
        assert args[0] is _deliver_clock_in_notices
        assert args[1] == shift.pk
        assert args[2] == [str(admin_user.pk)]


@pytest.mark.django_db(transaction=True)
class TestClockInNoticesAfterRealCommit:
    """The clock-in request succeeds whatever happens to its notices."""

    @freeze_time("2024-01-15 09:00:00")
    def test_crashing_notification_client_still_returns_200(self, caregiver_api, shift, admin_user):
        with patch('evv.signals.NotificationService') as service_class:
            service_class.return_value.notify.side_effect = RuntimeError("unexpected")
            response = caregiver_api.post(
                f'/api/shifts/{shift.pk}/clock-in/',
                {'latitude': CLIENT_LOCATION[0], 'longitude': CLIENT_LOCATION[1], 'accuracy': 10},
                format='json',
            )

        assert response.status_code == 200
        service_class.return_value.notify.assert_called_once()
        assert Shift.objects.get(pk=shift.pk).status == ShiftStatus.IN_PROGRESS

    @freeze_time("2024-01-15 09:00:00")
    def test_failing_admin_lookup_still_returns_200(self, caregiver_api, shift, admin_user):
        with patch('evv.signals._tenant_admin_ids', side_effect=DatabaseError("gone")):
            response = caregiver_api.post(
                f'/api/shifts/{shift.pk}/clock-in/',
                {'latitude': CLIENT_LOCATION[0], 'longitude': CLIENT_LOCATION[1], 'accuracy': 10},
                format='json',
            )

        assert response.status_code == 200
        assert Shift.objects.get(pk=shift.pk).status == ShiftStatus.IN_PROGRESS

    def test_deliver_logs_and_continues(self):
        with patch('evv.signals.NotificationService') as service_class, patch('evv.signals.logger') as logger:
            service_class.return_value.notify.side_effect = [ValueError("boom"), None]
            _deliver_clock_in_notices(7, ['1', '2'], 'hello', 'low')

        assert service_class.return_value.notify.call_count == 2
        logger.exception.assert_called_once()
        assert "shift 7 to admin 1" in logger.exception.call_args.args[0]
