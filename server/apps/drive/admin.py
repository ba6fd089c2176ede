"""Django admin configuration for drive app."""

from typing import Final

from django.contrib import admin
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils.html import format_html

from server.apps.drive.models import File, Folder, UserQuota

_WARNING_PERCENTAGE: Final = 90


def _format_bytes(size_bytes: int) -> str:
    """Format bytes in human-readable format.

    Args:
        size_bytes: Size in bytes.

    Returns:
        Formatted size string (e.g., '1.5 MB', '234 KB').
    """
    if size_bytes < 1024:
        return f'{size_bytes} B'
    if size_bytes < 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / 1024:.1f} KB'
    if size_bytes < 1024 * 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / (1024 * 1024):.1f} MB'
    return f'{size_bytes / (1024 * 1024 * 1024):.1f} GB'


@admin.register(Folder)
class FolderAdmin(admin.ModelAdmin[Folder]):
    """Admin interface for Folder model.

    Paths and counters are maintained by the folder tree service and
    are shown read-only.
    """

    list_display = [
        'path',
        'owner',
        'depth',
        'folder_count',
        'is_deleted',
        'modified_at',
    ]

    list_filter = [
        'is_deleted',
        'owner',
    ]

    search_fields = [
        'name',
        'path',
        'owner__username',
    ]

    readonly_fields = [
        'path',
        'depth',
        'folder_count',
        'deleted_at',
        'created_at',
        'modified_at',
    ]

    def get_queryset(self, request: HttpRequest) -> QuerySet[Folder]:
        """Optimize queryset with select_related.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet, deleted folders included.
        """
        return super().get_queryset(request).select_related('owner')


@admin.register(File)
class FileAdmin(admin.ModelAdmin[File]):
    """Admin interface for File model."""

    list_display = [
        'name',
        'owner',
        'parent',
        'size_display',
        'mime_type',
        'status',
        'preview_status',
        'created_at',
    ]

    list_filter = [
        'status',
        'preview_status',
        'is_deleted',
        'mime_type',
    ]

    search_fields = [
        'name',
        'description',
        's3_key',
    ]

    readonly_fields = [
        's3_key',
        'size',
        'mime_type',
        'status',
        'preview_key',
        'deleted_at',
        'created_at',
        'modified_at',
    ]

    fieldsets = (
        ('File Information', {
            'fields': ('name', 'owner', 'parent', 'description', 'tags'),
        }),
        ('Storage', {
            'fields': ('s3_key', 'size', 'mime_type', 'status'),
        }),
        ('Preview', {
            'fields': ('has_preview', 'preview_status', 'preview_key'),
        }),
        ('Timestamps', {
            'fields': ('deleted_at', 'created_at', 'modified_at'),
        }),
    )

    def size_display(self, obj: File) -> str:
        """Display file size in human-readable format.

        Args:
            obj: File instance.

        Returns:
            Formatted size string.
        """
        return _format_bytes(obj.size)
    size_display.short_description = 'Size'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[File]:
        """Optimize queryset with select_related.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet.
        """
        return super().get_queryset(request).select_related('owner', 'parent')


@admin.register(UserQuota)
class UserQuotaAdmin(admin.ModelAdmin[UserQuota]):
    """Admin interface for UserQuota model."""

    list_display = [
        'user',
        'limit_display',
        'used_display',
        'percentage_display',
        'status_display',
    ]

    search_fields = [
        'user__username',
        'user__email',
    ]

    # Usage only changes through the quota ledger
    readonly_fields = [
        'user',
        'storage_used',
    ]

    def limit_display(self, obj: UserQuota) -> str:
        """Display the limit in human-readable format."""
        return _format_bytes(obj.storage_limit)
    limit_display.short_description = 'Limit'  # type: ignore[attr-defined]

    def used_display(self, obj: UserQuota) -> str:
        """Display used bytes in human-readable format."""
        return _format_bytes(obj.storage_used)
    used_display.short_description = 'Used'  # type: ignore[attr-defined]

    def percentage_display(self, obj: UserQuota) -> str:
        """Display percentage of quota used."""
        return f'{obj.percentage_used()}%'
    percentage_display.short_description = '%'  # type: ignore[attr-defined]

    def status_display(self, obj: UserQuota) -> str:
        """Display status indicator based on usage.

        Args:
            obj: UserQuota instance.

        Returns:
            HTML formatted status indicator.
        """
        percentage = obj.percentage_used()

        if percentage >= 100:
            color = '#dc3545'
            status = 'Over Quota'
        elif percentage >= _WARNING_PERCENTAGE:
            color = '#ffc107'
            status = 'Warning'
        else:
            color = '#28a745'
            status = 'OK'

        return format_html(
            '<span style="color: {color}; font-weight: bold;">'
            '{status}</span>',
            color=color,
            status=status,
        )
    status_display.short_description = 'Status'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[UserQuota]:
        """Optimize queryset with select_related.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet.
        """
        return super().get_queryset(request).select_related('user')
