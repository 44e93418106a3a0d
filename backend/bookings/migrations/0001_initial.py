import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Booking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('service_details', models.JSONField(blank=True, default=dict)),
                ('latitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('longitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('scheduled_at', models.DateTimeField(blank=True, null=True)),
                ('preferred_datetime', models.DateTimeField(blank=True, null=True)),
                ('status', models.CharField(choices=[('requested', 'Requested'), ('in_progress', 'In Progress'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('rejected', 'Rejected'), ('expired', 'Expired')], default='requested', max_length=20)),
                ('overall_status', models.CharField(choices=[('pending', 'Pending'), ('in-progress', 'In Progress'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('expired', 'Expired')], default='pending', max_length=20)),
                ('dispatch_mode', models.CharField(choices=[('offers_queue', 'Sequential offers'), ('response_set', 'Open broadcast')], default='offers_queue', max_length=20)),
                ('sort_preference', models.CharField(choices=[('nearby', 'Nearest first'), ('rating', 'Highest rated'), ('cheapest', 'Cheapest'), ('mix', 'Balanced mix')], default='rating', max_length=10)),
                ('pending_providers', models.JSONField(blank=True, default=list)),
                ('provider_response_timeout', models.DateTimeField(blank=True, null=True)),
                ('pending_expires_at', models.DateTimeField(blank=True, null=True)),
                ('auto_assign_message', models.CharField(blank=True, default='', max_length=255)),
                ('version', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.TextField(blank=True, default='')),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='bookings', to=settings.AUTH_USER_MODEL)),
                ('provider', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_bookings', to=settings.AUTH_USER_MODEL)),
                ('service', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='bookings', to='catalog.service')),
                ('service_catalog', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='bookings', to='catalog.servicecatalog')),
                ('service_template', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='bookings', to='catalog.servicetemplate')),
            ],
            options={
                'db_table': 'bookings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'provider_response_timeout'], name='booking_offer_timeout_idx'),
                    models.Index(fields=['overall_status', 'pending_expires_at'], name='booking_pending_expiry_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BookingOffer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sequence', models.PositiveIntegerField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('declined', 'Declined'), ('expired', 'Expired')], default='pending', max_length=20)),
                ('offered_at', models.DateTimeField()),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('booking', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='offers', to='bookings.booking')),
                ('provider', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='booking_offers', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'booking_offers',
                'ordering': ['sequence'],
                'constraints': [
                    models.UniqueConstraint(fields=('booking', 'sequence'), name='unique_booking_offer_sequence'),
                    models.UniqueConstraint(condition=models.Q(('status', 'pending')), fields=('booking',), name='one_pending_offer_per_booking'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ProviderResponse',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('accepted', 'Accepted'), ('rejected', 'Rejected')], max_length=20)),
                ('reason', models.TextField(blank=True, default='')),
                ('responded_at', models.DateTimeField()),
                ('booking', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='provider_responses', to='bookings.booking')),
                ('provider', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='booking_responses', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'booking_provider_responses',
                'constraints': [
                    models.UniqueConstraint(fields=('booking', 'provider'), name='unique_booking_provider_response'),
                    models.UniqueConstraint(condition=models.Q(('status', 'accepted')), fields=('booking',), name='one_accepted_response_per_booking'),
                ],
            },
        ),
    ]
