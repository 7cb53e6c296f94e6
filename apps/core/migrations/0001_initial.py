import uuid

import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='SecurityAuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('event_type', models.CharField(db_index=True, help_text="Event type (e.g., 'cross_org_access_attempt')", max_length=100)),
                ('event_details', models.JSONField(blank=True, default=dict, help_text='Structured event details')),
                ('success', models.BooleanField(db_index=True, default=True, help_text='Whether the underlying action succeeded')),
                ('occurred_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='When the event happened')),
                ('url', models.TextField(blank=True, help_text='Originating URL or referrer')),
                ('user_agent', models.TextField(blank=True, help_text='User agent string')),
                ('user_id', models.CharField(blank=True, db_index=True, max_length=64)),
                ('organization_id', models.CharField(blank=True, db_index=True, max_length=64)),
            ],
            options={
                'db_table': 'security_audit_log',
                'ordering': ['-occurred_at'],
                'indexes': [
                    models.Index(fields=['organization_id', 'occurred_at'], name='security_au_organiz_6c1f0e_idx'),
                    models.Index(fields=['event_type', 'occurred_at'], name='security_au_event_t_3b2d9a_idx'),
                    models.Index(fields=['success', 'occurred_at'], name='security_au_success_9e4a7c_idx'),
                ],
            },
        ),
    ]
