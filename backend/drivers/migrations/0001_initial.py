import django.db.models.deletion
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
            name='DriverProfile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('vehicle_number', models.CharField(blank=True, max_length=20)),
                ('status', models.CharField(choices=[('ACTIVE', 'Active'), ('INACTIVE', 'Inactive'), ('BLOCKED', 'Blocked'), ('TERMINATED', 'Terminated')], default='ACTIVE', max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('banned_globally', models.BooleanField(default=False)),
                ('license_expiry', models.DateField(blank=True, null=True)),
                ('car_types', models.JSONField(blank=True, default=list)),
                ('trip_status', models.CharField(choices=[('available', 'Available'), ('on_trip', 'On Trip'), ('offline', 'Offline')], default='offline', max_length=20)),
                ('is_checked_in', models.BooleanField(default=False)),
                ('remaining_daily_limit', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('current_rating', models.DecimalField(decimal_places=2, default=0, max_digits=3)),
                ('completion_rate', models.DecimalField(decimal_places=2, default=100, max_digits=5)),
                ('complaint_count', models.PositiveIntegerField(default=0)),
                ('current_latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=10, null=True)),
                ('current_longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=10, null=True)),
                ('last_location_update', models.DateTimeField(blank=True, null=True)),
                ('franchise', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='drivers', to='franchises.franchise')),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='driver_profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'driver_profiles',
            },
        ),
    ]
