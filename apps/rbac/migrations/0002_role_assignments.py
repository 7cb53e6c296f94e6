import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('rbac', '0001_initial'),
        ('tenants', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='RoleAssignment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('role', models.CharField(choices=[('admin', 'Admin'), ('director', 'Director'), ('manager', 'Manager'), ('supervisor', 'Supervisor'), ('employee', 'Employee')], db_index=True, max_length=20)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('justification', models.TextField(blank=True, help_text='Reason given for the assignment')),
                ('revoked_at', models.DateTimeField(blank=True, null=True)),
                ('assigned_by', models.ForeignKey(blank=True, help_text='User who assigned this role', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='role_assignments_made', to=settings.AUTH_USER_MODEL)),
                ('organization', models.ForeignKey(help_text='Organization the role applies to', on_delete=django.db.models.deletion.CASCADE, related_name='role_assignments', to='tenants.organization')),
                ('user', models.ForeignKey(help_text='User holding the role', on_delete=django.db.models.deletion.CASCADE, related_name='role_assignments', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'role_assignments',
                'ordering': ['organization', 'user', 'role'],
                'indexes': [
                    models.Index(fields=['user', 'is_active'], name='role_assign_user_id_2f8c1d_idx'),
                    models.Index(fields=['organization', 'role'], name='role_assign_organiz_7b3e5a_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('is_active', True)), fields=('user', 'organization', 'role'), name='unique_active_role_assignment'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PermissionOverride',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('permission', models.CharField(help_text="Permission identifier (e.g. 'view_reports')", max_length=100)),
                ('granted', models.BooleanField(help_text='True = grant, False = deny (deny wins over role grants)')),
                ('reason', models.TextField(blank=True)),
                ('granted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='permission_overrides_made', to=settings.AUTH_USER_MODEL)),
                ('organization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='permission_overrides', to='tenants.organization')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='permission_overrides', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'permission_overrides',
                'ordering': ['user', 'permission'],
                'unique_together': {('user', 'organization', 'permission')},
            },
        ),
    ]
