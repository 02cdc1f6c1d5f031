"""
Shared fixtures: one agency with an admin, a scheduler and a caregiver,
a geocoded client in lower Manhattan, and a shift factory.
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from accounts.models import User
from evv.actors import Actor
from evv.models import Caregiver, Client, Shift
from evv.policy import EVVPolicy

BUSINESS_ID = 'agency-1'
OTHER_BUSINESS_ID = 'agency-2'

# Monday 2024-01-15 09:00 UTC
SHIFT_START = datetime(2024, 1, 15, 9, 0, tzinfo=dt_timezone.utc)

CLIENT_LOCATION = (40.7128, -74.0060)
FAR_AWAY = (40.730, -73.935)


@pytest.fixture
def policy():
    return EVVPolicy()


@pytest.fixture(autouse=True)
def inline_notifications(settings):
    # Send clock-in notices on the test thread so mocks see them
    settings.NOTIFICATION_ASYNC = False


# ============================================================================
# Users
# ============================================================================

@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        email='admin@agency.test',
        name='Ada Admin',
        password='testpass123',
        role='admin',
        business_id=BUSINESS_ID,
    )


@pytest.fixture
def scheduler_user(db):
    return User.objects.create_user(
        email='scheduler@agency.test',
        name='Sam Scheduler',
        password='testpass123',
        role='scheduler',
        business_id=BUSINESS_ID,
    )


@pytest.fixture
def caregiver_user(db):
    return User.objects.create_user(
        email='carla@agency.test',
        name='Carla Care',
        password='testpass123',
        role='caregiver',
        business_id=BUSINESS_ID,
    )


@pytest.fixture
def caregiver(caregiver_user):
    return Caregiver.objects.create(
        user=caregiver_user,
        employee_id='EMP001',
        business_id=BUSINESS_ID,
        first_name='Carla',
        last_name='Care',
    )


@pytest.fixture
def other_caregiver(db):
    user = User.objects.create_user(
        email='otto@agency.test',
        name='Otto Other',
        password='testpass123',
        role='caregiver',
        business_id=BUSINESS_ID,
    )
    return Caregiver.objects.create(
        user=user,
        employee_id='EMP002',
        business_id=BUSINESS_ID,
        first_name='Otto',
        last_name='Other',
    )


# ============================================================================
# Clients and shifts
# ============================================================================

@pytest.fixture
def home_client(db):
    return Client.objects.create(
        client_id='CL001',
        business_id=BUSINESS_ID,
        first_name='Grace',
        last_name='Hopper',
        address_line1='1 Centre St',
        city='New York',
        state='NY',
        zip_code='10007',
        location_latitude=Decimal('40.712800'),
        location_longitude=Decimal('-74.006000'),
    )


@pytest.fixture
def ungeocoded_client(db):
    return Client.objects.create(
        client_id='CL002',
        business_id=BUSINESS_ID,
        first_name='Alan',
        last_name='Turing',
    )


@pytest.fixture
def make_shift(caregiver, home_client):
    def _make_shift(start=SHIFT_START, hours=3, **extra):
        extra.setdefault('caregiver', caregiver)
        extra.setdefault('client', home_client)
        extra.setdefault('business_id', BUSINESS_ID)
        return Shift.objects.create(
            start_time=start,
            end_time=start + timedelta(hours=hours),
            **extra
        )
    return _make_shift


@pytest.fixture
def shift(make_shift):
    return make_shift(authorized_hours=Decimal('3.00'))


# ============================================================================
# Actors and API clients
# ============================================================================

@pytest.fixture
def caregiver_actor(caregiver_user, caregiver):
    return Actor.from_user(caregiver_user)


@pytest.fixture
def scheduler_actor(scheduler_user):
    return Actor.from_user(scheduler_user)


@pytest.fixture
def scheduler_api(scheduler_user):
    client = APIClient()
    client.force_authenticate(user=scheduler_user)
    return client


@pytest.fixture
def caregiver_api(caregiver_user, caregiver):
    client = APIClient()
    client.force_authenticate(user=caregiver_user)
    return client
