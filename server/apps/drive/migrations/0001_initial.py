import uuid

import django.db.models.deletion
import django.db.models.functions.text
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Folder',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('path', models.CharField(help_text='Materialized path: / for root, /a/b below it', max_length=1024)),
                ('depth', models.PositiveSmallIntegerField(default=0)),
                ('folder_count', models.PositiveIntegerField(default=0, help_text='Number of live direct child folders')),
                ('is_deleted', models.BooleanField(default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('modified_at', models.DateTimeField(auto_now=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='folders', to=settings.AUTH_USER_MODEL)),
                ('parent', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='children', to='drive.folder')),
            ],
            options={
                'verbose_name': 'Folder',
                'verbose_name_plural': 'Folders',
                'ordering': ['path'],
                'default_manager_name': 'all_objects',
                'indexes': [
                    models.Index(fields=['owner', 'parent', 'is_deleted'], name='folders_listing_idx'),
                    models.Index(fields=['owner', 'path'], name='folders_owner_path_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(django.db.models.functions.text.Lower('name'), models.F('owner'), models.F('parent'), condition=models.Q(('is_deleted', False)), name='folders_unique_live_name'),
                    models.UniqueConstraint(condition=models.Q(('is_deleted', False), ('parent__isnull', True)), fields=('owner',), name='folders_single_live_root'),
                    models.CheckConstraint(condition=models.Q(('depth__lte', 20)), name='folders_depth_ceiling'),
                ],
            },
        ),
        migrations.CreateModel(
            name='File',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('size', models.BigIntegerField(help_text='File size in bytes')),
                ('mime_type', models.CharField(max_length=255)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('active', 'Active'), ('failed', 'Failed')], default='pending', max_length=16)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('description', models.TextField(blank=True, default='')),
                ('is_deleted', models.BooleanField(default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('s3_key', models.CharField(help_text='Key in storage: users/{owner}/files/{file}/original', max_length=1024, unique=True)),
                ('has_preview', models.BooleanField(default=False)),
                ('preview_key', models.CharField(blank=True, max_length=1024, null=True)),
                ('preview_status', models.CharField(choices=[('none', 'None'), ('processing', 'Processing'), ('ready', 'Ready'), ('failed', 'Failed')], default='none', max_length=16)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('modified_at', models.DateTimeField(auto_now=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='files', to=settings.AUTH_USER_MODEL)),
                ('parent', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='files', to='drive.folder')),
            ],
            options={
                'verbose_name': 'File',
                'verbose_name_plural': 'Files',
                'ordering': ['-created_at'],
                'default_manager_name': 'all_objects',
                'indexes': [
                    models.Index(fields=['owner', 'parent', 'is_deleted'], name='files_listing_idx'),
                    models.Index(fields=['owner', '-created_at'], name='files_owner_recent_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('has_preview', False), models.Q(('preview_status', 'ready'), ('preview_key__isnull', False)), _connector='OR'), name='files_preview_ready'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserQuota',
            fields=[
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name='quota', serialize=False, to=settings.AUTH_USER_MODEL)),
                ('storage_limit', models.BigIntegerField(default=104857600, help_text='Storage quota limit in bytes')),
                ('storage_used', models.BigIntegerField(default=0, help_text='Currently used storage in bytes')),
            ],
            options={
                'verbose_name': 'User Quota',
                'verbose_name_plural': 'User Quotas',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('storage_limit__gt', 0)), name='storage_limit_positive'),
                    models.CheckConstraint(condition=models.Q(('storage_used__gte', 0)), name='storage_used_non_negative'),
                ],
            },
        ),
    ]
