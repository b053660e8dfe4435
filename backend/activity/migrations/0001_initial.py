import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('franchises', '0001_initial'),
        ('trips', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ActivityLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=[('TRIP_CREATED', 'Trip created'), ('TRIP_OFFERED', 'Trip offered'), ('TRIP_ASSIGNED', 'Trip assigned'), ('TRIP_ACCEPTED', 'Trip accepted'), ('TRIP_REJECTED', 'Trip rejected'), ('TRIP_REASSIGNED', 'Trip reassigned'), ('TRIP_RESCHEDULED', 'Trip rescheduled'), ('TRIP_CANCELLED', 'Trip cancelled'), ('TRIP_STARTED', 'Trip started'), ('TRIP_ENDED', 'Trip ended'), ('TRIP_UPDATED', 'Trip updated')], max_length=30)),
                ('entity_type', models.CharField(choices=[('TRIP', 'Trip'), ('TRIP_OFFER', 'Trip offer')], max_length=20)),
                ('entity_id', models.CharField(max_length=64)),
                ('description', models.TextField(blank=True)),
                ('metadata', models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='performed_activity', to=settings.AUTH_USER_MODEL)),
                ('driver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='activity_entries', to=settings.AUTH_USER_MODEL)),
                ('franchise', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='activity', to='franchises.franchise')),
                ('trip', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='activity', to='trips.trip')),
            ],
            options={
                'db_table': 'activity_logs',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['driver', 'action', 'created_at'], name='activity_driver_action_idx'),
                ],
            },
        ),
    ]
