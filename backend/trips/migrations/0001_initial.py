import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('franchises', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='TripType',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, unique=True)),
                ('pricing_type', models.CharField(choices=[('TIME', 'Time based'), ('DISTANCE', 'Distance based')], default='TIME', max_length=10)),
                ('base_amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('base_duration_hours', models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ('base_distance_km', models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True)),
                ('extra_per_hour', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('extra_per_half_hour', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('extra_per_km', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('premium_multiplier', models.DecimalField(decimal_places=2, default=1, max_digits=4)),
                ('is_active', models.BooleanField(default=True)),
            ],
            options={
                'db_table': 'trip_types',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Trip',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('customer_name', models.CharField(max_length=150)),
                ('customer_phone', models.CharField(max_length=20)),
                ('customer_email', models.EmailField(blank=True, max_length=254)),
                ('pickup_address', models.TextField()),
                ('pickup_latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('pickup_longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('drop_address', models.TextField(blank=True)),
                ('drop_latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('drop_longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('car_category', models.CharField(choices=[('NORMAL', 'Normal'), ('PREMIUM', 'Premium'), ('LUXURY', 'Luxury')], default='NORMAL', max_length=10)),
                ('car_gear_type', models.CharField(blank=True, choices=[('MANUAL', 'Manual'), ('AUTOMATIC', 'Automatic')], max_length=10, null=True)),
                ('scheduled_at', models.DateTimeField(blank=True, null=True)),
                ('status', models.CharField(choices=[('REQUESTED', 'Requested'), ('ASSIGNED', 'Assigned'), ('DRIVER_ON_THE_WAY', 'Driver on the way'), ('IN_PROGRESS', 'In progress'), ('COMPLETED', 'Completed'), ('CANCELLED_BY_CUSTOMER', 'Cancelled by customer'), ('CANCELLED_BY_OFFICE', 'Cancelled by office')], default='REQUESTED', max_length=30)),
                ('estimated_distance_km', models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True)),
                ('estimated_duration_hours', models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ('base_amount', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('extra_amount', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('final_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('payment_status', models.CharField(choices=[('PENDING', 'Pending'), ('PAID', 'Paid')], default='PENDING', max_length=10)),
                ('payment_method', models.CharField(blank=True, choices=[('CASH', 'Cash'), ('UPI', 'UPI'), ('SPLIT', 'Cash + UPI')], max_length=10, null=True)),
                ('cash_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('upi_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('upi_reference', models.CharField(blank=True, max_length=100)),
                ('start_odometer', models.DecimalField(blank=True, decimal_places=1, max_digits=10, null=True)),
                ('odometer_start_image', models.CharField(blank=True, max_length=500)),
                ('car_front_image', models.CharField(blank=True, max_length=500)),
                ('car_back_image', models.CharField(blank=True, max_length=500)),
                ('driver_selfie', models.CharField(blank=True, max_length=500)),
                ('start_time', models.DateTimeField(blank=True, null=True)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('end_odometer', models.DecimalField(blank=True, decimal_places=1, max_digits=10, null=True)),
                ('odometer_end_image', models.CharField(blank=True, max_length=500)),
                ('car_end_front_image', models.CharField(blank=True, max_length=500)),
                ('car_end_back_image', models.CharField(blank=True, max_length=500)),
                ('end_time', models.DateTimeField(blank=True, null=True)),
                ('end_verified_at', models.DateTimeField(blank=True, null=True)),
                ('ended_at', models.DateTimeField(blank=True, null=True)),
                ('distance_km', models.DecimalField(blank=True, decimal_places=1, max_digits=10, null=True)),
                ('duration_hours', models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True)),
                ('live_latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('live_longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('live_location_updated_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_trips', to=settings.AUTH_USER_MODEL)),
                ('driver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_trips', to=settings.AUTH_USER_MODEL)),
                ('franchise', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='trips', to='franchises.franchise')),
                ('trip_type', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='trips', to='trips.triptype')),
            ],
            options={
                'db_table': 'trips',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['franchise', 'status'], name='trips_franchise_status_idx'),
                    models.Index(fields=['driver', 'status'], name='trips_driver_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TripOffer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('OFFERED', 'Offered'), ('ACCEPTED', 'Accepted'), ('REJECTED', 'Rejected'), ('EXPIRED', 'Expired'), ('CANCELLED', 'Cancelled')], default='OFFERED', max_length=20)),
                ('offered_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('expires_at', models.DateTimeField()),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('rejected_at', models.DateTimeField(blank=True, null=True)),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('driver', models.ForeignKey(limit_choices_to={'role': 'driver'}, on_delete=django.db.models.deletion.CASCADE, related_name='trip_offers', to=settings.AUTH_USER_MODEL)),
                ('trip', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='offers', to='trips.trip')),
            ],
            options={
                'db_table': 'trip_offers',
                'ordering': ['-offered_at'],
                'indexes': [
                    models.Index(fields=['driver', 'status', 'expires_at'], name='trip_offers_driver_live_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'OFFERED')), fields=('trip', 'driver'), name='unique_live_offer_per_trip_driver'),
                ],
            },
        ),
        migrations.CreateModel(
            name='VerificationChallenge',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('purpose', models.CharField(choices=[('start', 'Trip start'), ('end', 'Trip end')], max_length=10)),
                ('token_digest', models.CharField(max_length=64, unique=True)),
                ('otp', models.CharField(max_length=8)),
                ('expires_at', models.DateTimeField()),
                ('consumed_at', models.DateTimeField(blank=True, null=True)),
                ('odometer_value', models.DecimalField(decimal_places=1, max_digits=10)),
                ('evidence', models.JSONField(blank=True, default=dict)),
                ('reported_at', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('trip', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='challenges', to='trips.trip')),
            ],
            options={
                'db_table': 'trip_verification_challenges',
                'ordering': ['-created_at'],
            },
        ),
    ]
