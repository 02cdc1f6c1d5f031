"""
End-to-end tests for the scheduling and visit lifecycle endpoints.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
from freezegun import freeze_time
from rest_framework.test import APIClient

from evv.exceptions import ImmutableFieldError
from evv.models import Shift, ShiftStatus
from evv.serializers import ShiftScheduleSerializer
from tests.conftest import CLIENT_LOCATION, FAR_AWAY, SHIFT_START

pytestmark = pytest.mark.django_db

AT_START = "2024-01-15 09:00:00"
THREE_TEN_LATER = "2024-01-15 12:10:00"


def clock_payload(point, **extra):
    return {'latitude': point[0], 'longitude': point[1], 'accuracy': 10, **extra}


class TestAuthentication:
    def test_login_returns_tokens_and_role(self, caregiver_user):
        response = APIClient().post(
            '/api/auth/token/',
            {'email': 'carla@agency.test', 'password': 'testpass123'},
            format='json',
        )

        assert response.status_code == 200
        assert 'access_token' in response.data
        assert 'refresh_token' in response.data
        assert response.data['role'] == 'caregiver'
        assert response.data['business_id'] == 'agency-1'

    def test_anonymous_requests_are_rejected(self):
        response = APIClient().get('/api/shifts/')

        assert response.status_code == 401


class TestScheduling:
    def payload(self, caregiver, home_client, start=SHIFT_START, hours=3):
        return {
            'caregiver': caregiver.pk,
            'client': home_client.pk,
            'start_time': start.isoformat(),
            'end_time': (start + timedelta(hours=hours)).isoformat(),
            'authorized_hours': '3.00',
        }

    def test_scheduler_creates_shift(self, scheduler_api, caregiver, home_client):
        response = scheduler_api.post('/api/shifts/', self.payload(caregiver, home_client), format='json')

        assert response.status_code == 201
        assert response.data['conflicts'] == []
        shift = Shift.objects.get(pk=response.data['shift']['id'])
        assert shift.business_id == 'agency-1'
        assert shift.status == ShiftStatus.SCHEDULED
        assert shift.caregiver_name == 'Carla Care'
        assert shift.client_name == 'Grace Hopper'

    def test_overlap_is_reported_but_allowed(self, scheduler_api, make_shift, caregiver, home_client):
        existing = make_shift()
        payload = self.payload(caregiver, home_client, start=SHIFT_START + timedelta(hours=2))

        response = scheduler_api.post('/api/shifts/', payload, format='json')

        assert response.status_code == 201
        assert [c['shift_id'] for c in response.data['conflicts']] == [existing.pk]

    def test_end_must_follow_start(self, scheduler_api, caregiver, home_client):
        response = scheduler_api.post('/api/shifts/', self.payload(caregiver, home_client, hours=0), format='json')

        assert response.status_code == 400
        assert 'end_time' in response.data

    def test_caregiver_cannot_schedule(self, caregiver_api, caregiver, home_client):
        response = caregiver_api.post('/api/shifts/', self.payload(caregiver, home_client), format='json')

        assert response.status_code == 403

    def test_caregiver_sees_only_own_shifts(self, caregiver_api, make_shift, other_caregiver):
        mine = make_shift()
        make_shift(caregiver=other_caregiver)

        response = caregiver_api.get('/api/shifts/')

        assert response.status_code == 200
        assert [s['id'] for s in response.data] == [mine.pk]

    def test_list_filters_by_status_and_date(self, scheduler_api, make_shift):
        today = make_shift()
        make_shift(start=SHIFT_START + timedelta(days=2))
        make_shift(status=ShiftStatus.CANCELLED)

        response = scheduler_api.get('/api/shifts/', {'status': 'scheduled', 'date_to': '2024-01-15'})

        assert [s['id'] for s in response.data] == [today.pk]

    def test_reschedule_scheduled_shift(self, scheduler_api, shift):
        new_end = (shift.end_time + timedelta(hours=1)).isoformat()

        response = scheduler_api.patch(f'/api/shifts/{shift.pk}/', {'end_time': new_end}, format='json')

        assert response.status_code == 200
        shift.refresh_from_db()
        assert shift.end_time == SHIFT_START + timedelta(hours=4)
        assert shift.visit_changes[-1]['event'] == 'reschedule'

    def test_started_shift_cannot_be_rescheduled(self, scheduler_api, make_shift):
        shift = make_shift(status=ShiftStatus.IN_PROGRESS)

        response = scheduler_api.patch(f'/api/shifts/{shift.pk}/', {'authorized_hours': '4.00'}, format='json')

        assert response.status_code == 409

    def test_reschedule_writes_only_the_changed_columns(self, scheduler_api, shift):
        validate = ShiftScheduleSerializer.validate

        def clock_in_meanwhile(serializer, attrs):
            Shift.objects.filter(pk=shift.pk).update(
                status=ShiftStatus.IN_PROGRESS, check_in_time=SHIFT_START, checked_in_by='42'
            )
            return validate(serializer, attrs)

        new_end = (shift.end_time + timedelta(hours=1)).isoformat()
        with patch.object(ShiftScheduleSerializer, 'validate', clock_in_meanwhile):
            response = scheduler_api.patch(f'/api/shifts/{shift.pk}/', {'end_time': new_end}, format='json')

        assert response.status_code == 200
        shift.refresh_from_db()
        assert shift.end_time == SHIFT_START + timedelta(hours=4)
        assert shift.status == ShiftStatus.IN_PROGRESS
        assert shift.check_in_time == SHIFT_START
        assert shift.checked_in_by == '42'
        assert shift.visit_changes[-1]['memo'] == 'end_time'

    def test_lifecycle_error_on_reschedule_is_not_a_server_error(self, scheduler_api, shift):
        with patch.object(Shift, 'save', side_effect=ImmutableFieldError('check_in_time')):
            response = scheduler_api.patch(f'/api/shifts/{shift.pk}/', {'authorized_hours': '4.00'}, format='json')

        assert response.status_code == 400
        assert 'check_in_time' in response.data['error']

    @pytest.mark.parametrize('params', [
        {'date_from': '2024-02-30'},
        {'date_to': 'tomorrow'},
        {'caregiver': 'abc'},
        {'status': 'sleeping'},
        {'date_from': '2024-01-16', 'date_to': '2024-01-15'},
    ])
    def test_malformed_filters_are_400(self, scheduler_api, params):
        response = scheduler_api.get('/api/shifts/', params)

        assert response.status_code == 400

    def test_unknown_shift_is_404(self, scheduler_api):
        assert scheduler_api.get('/api/shifts/999999/').status_code == 404


class TestClockInOut:
    @freeze_time(AT_START)
    def test_clock_in_at_client(self, caregiver_api, shift):
        response = caregiver_api.post(
            f'/api/shifts/{shift.pk}/clock-in/', clock_payload(CLIENT_LOCATION), format='json'
        )

        assert response.status_code == 200
        assert response.data['shift']['status'] == 'in_progress'
        assert response.data['shift']['evv_status'] == 'verified'
        assert response.data['decision']['geofence_status'] == 'in_range'

    @freeze_time(AT_START)
    def test_far_away_requires_override_then_force_succeeds(self, caregiver_api, shift):
        url = f'/api/shifts/{shift.pk}/clock-in/'

        response = caregiver_api.post(url, clock_payload(FAR_AWAY), format='json')
        assert response.status_code == 428
        assert response.data['requires_override'] is True
        assert response.data['decision']['distance_miles'] > 0.5
        assert Shift.objects.get(pk=shift.pk).status == ShiftStatus.SCHEDULED

        response = caregiver_api.post(url, clock_payload(FAR_AWAY, force=True), format='json')
        assert response.status_code == 200
        assert response.data['shift']['evv_status'] == 'exception'
        assert response.data['shift']['geofence_status'] == 'out_of_range'

    @freeze_time(AT_START)
    def test_location_failure_asks_for_retry(self, caregiver_api, shift):
        response = caregiver_api.post(
            f'/api/shifts/{shift.pk}/clock-in/', {'location_error': 'timeout'}, format='json'
        )

        assert response.status_code == 422
        assert response.data['retry'] is True
        assert response.data['reason'] == 'timeout'

    @freeze_time(AT_START)
    def test_invalid_coordinates_are_400(self, caregiver_api, shift):
        response = caregiver_api.post(
            f'/api/shifts/{shift.pk}/clock-in/', {'latitude': 91, 'longitude': 0}, format='json'
        )

        assert response.status_code == 400

    @freeze_time("2024-01-15 06:00:00")
    def test_too_early_is_409(self, caregiver_api, shift):
        response = caregiver_api.post(
            f'/api/shifts/{shift.pk}/clock-in/', clock_payload(CLIENT_LOCATION), format='json'
        )

        assert response.status_code == 409
        assert 'opens_at' in response.data

    @freeze_time(AT_START)
    def test_someone_elses_shift_is_403(self, caregiver_api, make_shift, other_caregiver):
        shift = make_shift(caregiver=other_caregiver)

        response = caregiver_api.post(
            f'/api/shifts/{shift.pk}/clock-in/', clock_payload(CLIENT_LOCATION), format='json'
        )

        assert response.status_code == 403

    @freeze_time(AT_START)
    def test_missing_shift_is_404(self, caregiver_api):
        response = caregiver_api.post('/api/shifts/999999/clock-in/', clock_payload(CLIENT_LOCATION), format='json')

        assert response.status_code == 404

    def test_clock_out_bills_the_visit(self, caregiver_api, shift):
        with freeze_time(AT_START):
            caregiver_api.post(f'/api/shifts/{shift.pk}/clock-in/', clock_payload(CLIENT_LOCATION), format='json')
        with freeze_time(THREE_TEN_LATER):
            response = caregiver_api.post(
                f'/api/shifts/{shift.pk}/clock-out/', clock_payload(CLIENT_LOCATION), format='json'
            )

        assert response.status_code == 200
        assert response.data['shift']['status'] == 'completed'
        assert response.data['shift']['units'] == '3.25'
        assert response.data['shift']['billing_code'] == 'G0156'

    @freeze_time(AT_START)
    def test_clock_out_before_clock_in_is_409(self, caregiver_api, shift):
        response = caregiver_api.post(
            f'/api/shifts/{shift.pk}/clock-out/', clock_payload(CLIENT_LOCATION), format='json'
        )

        assert response.status_code == 409
        assert response.data['current_status'] == 'scheduled'


class TestCancelAndMissed:
    def test_scheduler_cancels(self, scheduler_api, shift):
        response = scheduler_api.post(f'/api/shifts/{shift.pk}/cancel/', {'reason': 'Client request'}, format='json')

        assert response.status_code == 200
        assert response.data['shift']['status'] == 'cancelled'

    def test_caregiver_cannot_cancel(self, caregiver_api, shift):
        response = caregiver_api.post(f'/api/shifts/{shift.pk}/cancel/', {}, format='json')

        assert response.status_code == 403

    def test_mark_missed_twice(self, scheduler_api, shift):
        url = f'/api/shifts/{shift.pk}/missed/'

        assert scheduler_api.post(url, {}, format='json').status_code == 200
        assert scheduler_api.post(url, {}, format='json').status_code == 409


class TestConflictReport:
    def test_reports_overlapping_pairs(self, scheduler_api, make_shift, caregiver):
        make_shift()
        make_shift(start=SHIFT_START + timedelta(hours=3))
        make_shift(start=SHIFT_START + timedelta(hours=2))

        response = scheduler_api.get(f'/api/caregivers/{caregiver.pk}/conflicts/')

        assert response.status_code == 200
        assert response.data['count'] == 2

    def test_caregiver_cannot_read_colleague_report(self, caregiver_api, other_caregiver):
        response = caregiver_api.get(f'/api/caregivers/{other_caregiver.pk}/conflicts/')

        assert response.status_code == 403
