"""Tests for storage quota accounting."""

import pytest

from server.apps.drive.exceptions import (
    InconsistentStateError,
    QuotaExceededError,
)
from server.apps.drive.models import File, FileStatus, UserQuota


@pytest.mark.django_db
def test_get_or_create_account_uses_default_limit(user, ledger):
    """Test accounts created on demand get the ledger's limit."""
    assert not UserQuota.objects.filter(user=user).exists()

    quota = ledger.get_or_create_account(user)

    assert quota.storage_limit == 1000
    assert quota.storage_used == 0


@pytest.mark.django_db
def test_get_or_create_account_returns_existing(user, ledger):
    """Test an existing account is left as is."""
    UserQuota.objects.create(user=user, storage_limit=5000, storage_used=10)

    quota = ledger.get_or_create_account(user)

    assert quota.storage_limit == 5000
    assert quota.storage_used == 10


@pytest.mark.django_db
def test_check_passes_at_exact_limit(user, ledger):
    """Test filling the quota exactly is allowed."""
    UserQuota.objects.create(user=user, storage_limit=1000, storage_used=400)

    ledger.check(user, 600)


@pytest.mark.django_db
def test_check_raises_when_exceeded(user, ledger):
    """Test check raises QuotaExceededError with the numbers."""
    UserQuota.objects.create(user=user, storage_limit=1000, storage_used=400)

    with pytest.raises(QuotaExceededError) as exc_info:
        ledger.check(user, 700)

    assert exc_info.value.quota_bytes == 1000
    assert exc_info.value.used_bytes == 400
    assert exc_info.value.required_bytes == 700
    assert 'only 600 bytes available' in str(exc_info.value)


@pytest.mark.django_db
def test_increment_creates_account(user, ledger):
    """Test increment works before any account exists."""
    ledger.increment(user, 250)
    ledger.increment(user, 50)

    assert UserQuota.objects.get(user=user).storage_used == 300


@pytest.mark.django_db
def test_increment_rejects_negative(user, ledger):
    """Test negative sizes are programming errors."""
    with pytest.raises(ValueError, match='non-negative'):
        ledger.increment(user, -1)


@pytest.mark.django_db
def test_guarded_decrement(user, ledger):
    """Test decrement subtracts when enough usage is recorded."""
    UserQuota.objects.create(user=user, storage_used=500)

    ledger.guarded_decrement(user, 500)

    assert UserQuota.objects.get(user=user).storage_used == 0


@pytest.mark.django_db
def test_guarded_decrement_refuses_to_go_negative(user, ledger):
    """Test a decrement larger than the usage fails and changes nothing."""
    UserQuota.objects.create(user=user, storage_used=100)

    with pytest.raises(InconsistentStateError):
        ledger.guarded_decrement(user, 101)

    assert UserQuota.objects.get(user=user).storage_used == 100


@pytest.mark.django_db
def test_guarded_decrement_without_account(user, ledger):
    """Test a missing account cannot be decremented."""
    with pytest.raises(InconsistentStateError):
        ledger.guarded_decrement(user, 1)


@pytest.mark.django_db
def test_guarded_decrement_of_zero_is_noop(user, ledger):
    """Test reclaiming nothing never fails."""
    ledger.guarded_decrement(user, 0)

    assert not UserQuota.objects.filter(user=user).exists()


@pytest.mark.django_db
def test_usage(user, ledger):
    """Test usage reports used, limit, remaining and percentage."""
    UserQuota.objects.create(user=user, storage_limit=1000, storage_used=333)

    usage = ledger.usage(user)

    assert usage.used == 333
    assert usage.limit == 1000
    assert usage.remaining == 667
    assert usage.percentage_used == 33


@pytest.mark.django_db
def test_recalculate_counts_active_live_files(user, ledger, root):
    """Test recalculation ignores pending and deleted files."""
    UserQuota.objects.create(user=user, storage_used=999)
    sizes = [
        (100, FileStatus.ACTIVE, False),
        (200, FileStatus.PENDING, False),
        (300, FileStatus.ACTIVE, True),
        (50, FileStatus.ACTIVE, False),
    ]
    for index, (size, status, deleted) in enumerate(sizes):
        File.objects.create(
            owner=user,
            parent=root,
            name=f'f{index}',
            size=size,
            mime_type='text/plain',
            status=status,
            is_deleted=deleted,
            s3_key=f'users/{user.pk}/files/f{index}/original',
        )

    total = ledger.recalculate(user)

    assert total == 150
    assert UserQuota.objects.get(user=user).storage_used == 150
