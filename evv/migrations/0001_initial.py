import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Client',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('client_id', models.CharField(max_length=50)),
                ('business_id', models.CharField(db_index=True, max_length=64)),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(max_length=100)),
                ('address_line1', models.CharField(blank=True, max_length=255, null=True)),
                ('address_line2', models.CharField(blank=True, max_length=255, null=True)),
                ('city', models.CharField(blank=True, max_length=100, null=True)),
                ('state', models.CharField(blank=True, max_length=2, null=True)),
                ('zip_code', models.CharField(blank=True, max_length=10, null=True, validators=[django.core.validators.RegexValidator('^\\d{5}(-\\d{4})?$', 'Invalid ZIP code format')])),
                ('location_latitude', models.DecimalField(blank=True, decimal_places=6, help_text='Latitude coordinate for service location', max_digits=9, null=True, validators=[django.core.validators.MinValueValidator(-90), django.core.validators.MaxValueValidator(90)])),
                ('location_longitude', models.DecimalField(blank=True, decimal_places=6, help_text='Longitude coordinate for service location', max_digits=9, null=True, validators=[django.core.validators.MinValueValidator(-180), django.core.validators.MaxValueValidator(180)])),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'evv_clients',
                'ordering': ['last_name', 'first_name'],
                'constraints': [models.UniqueConstraint(fields=('business_id', 'client_id'), name='unique_client_per_business')],
            },
        ),
        migrations.CreateModel(
            name='Caregiver',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('employee_id', models.CharField(max_length=50)),
                ('business_id', models.CharField(db_index=True, max_length=64)),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(max_length=100)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('phone', models.CharField(blank=True, max_length=10, validators=[django.core.validators.RegexValidator('^\\d{10}$', 'Phone number must be 10 digits')])),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive'), ('on_leave', 'On Leave'), ('terminated', 'Terminated')], default='active', max_length=20)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='caregiver_profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['last_name', 'first_name'],
                'constraints': [models.UniqueConstraint(fields=('business_id', 'employee_id'), name='unique_caregiver_per_business')],
            },
        ),
        migrations.CreateModel(
            name='Shift',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('business_id', models.CharField(db_index=True, max_length=64)),
                ('caregiver_name', models.CharField(blank=True, max_length=200)),
                ('client_name', models.CharField(blank=True, max_length=200)),
                ('start_time', models.DateTimeField(help_text='Scheduled start time (UTC)')),
                ('end_time', models.DateTimeField(help_text='Scheduled end time (UTC)')),
                ('authorized_hours', models.DecimalField(blank=True, decimal_places=2, help_text='Hours authorized for this visit by the payer', max_digits=5, null=True, validators=[django.core.validators.MinValueValidator(0)])),
                ('status', models.CharField(choices=[('scheduled', 'Scheduled'), ('in_progress', 'In Progress'), ('completed', 'Completed'), ('missed', 'Missed'), ('cancelled', 'Cancelled')], db_index=True, default='scheduled', max_length=20)),
                ('check_in_time', models.DateTimeField(blank=True, null=True)),
                ('check_in_latitude', models.DecimalField(blank=True, decimal_places=7, max_digits=10, null=True)),
                ('check_in_longitude', models.DecimalField(blank=True, decimal_places=7, max_digits=10, null=True)),
                ('check_in_accuracy', models.FloatField(blank=True, help_text='GPS accuracy radius in meters', null=True)),
                ('checked_in_by', models.CharField(blank=True, max_length=64)),
                ('check_out_time', models.DateTimeField(blank=True, null=True)),
                ('check_out_latitude', models.DecimalField(blank=True, decimal_places=7, max_digits=10, null=True)),
                ('check_out_longitude', models.DecimalField(blank=True, decimal_places=7, max_digits=10, null=True)),
                ('check_out_accuracy', models.FloatField(blank=True, help_text='GPS accuracy radius in meters', null=True)),
                ('checked_out_by', models.CharField(blank=True, max_length=64)),
                ('geofence_status', models.CharField(choices=[('not_checked', 'Not Checked'), ('in_range', 'Within Geofence'), ('out_of_range', 'Outside Geofence')], default='not_checked', max_length=20)),
                ('geofence_distance_miles', models.DecimalField(blank=True, decimal_places=3, help_text='Distance from client location in miles', max_digits=9, null=True)),
                ('evv_status', models.CharField(choices=[('pending', 'Pending'), ('verified', 'Verified'), ('exception', 'Exception'), ('rejected', 'Rejected')], db_index=True, default='pending', max_length=20)),
                ('evv_exceptions', models.JSONField(blank=True, default=list)),
                ('verification_method', models.CharField(choices=[('gps', 'GPS'), ('app_login', 'App Login'), ('telephony', 'Telephony'), ('manual', 'Manual')], default='gps', max_length=20)),
                ('late_arrival_minutes', models.PositiveIntegerField(blank=True, null=True)),
                ('early_departure_minutes', models.PositiveIntegerField(blank=True, null=True)),
                ('actual_hours', models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ('units', models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ('billing_code', models.CharField(blank=True, max_length=10)),
                ('modifier', models.CharField(blank=True, max_length=4)),
                ('billing_needs_review', models.BooleanField(default=False)),
                ('visit_changes', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('caregiver', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='shifts', to='evv.caregiver')),
                ('client', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='shifts', to='evv.client')),
            ],
            options={
                'ordering': ['-start_time'],
                'indexes': [
                    models.Index(fields=['caregiver', 'start_time'], name='shift_caregiver_start_idx'),
                    models.Index(fields=['client', 'start_time'], name='shift_client_start_idx'),
                    models.Index(fields=['business_id', 'status'], name='shift_business_status_idx'),
                ],
                'constraints': [models.CheckConstraint(condition=models.Q(('end_time__gt', models.F('start_time'))), name='shift_end_after_start')],
            },
        ),
    ]
