"""Drive storage settings."""

from server.settings.components import config

# Storage limit given to accounts created on demand (100 MiB)
DRIVE_DEFAULT_STORAGE_LIMIT = config(
    'DRIVE_DEFAULT_STORAGE_LIMIT',
    cast=int,
    default=100 * 1024 * 1024,
)

# Largest object accepted by upload confirmation (50 MiB)
DRIVE_MAX_UPLOAD_BYTES = config(
    'DRIVE_MAX_UPLOAD_BYTES',
    cast=int,
    default=50 * 1024 * 1024,
)

# Presigned URL lifetimes in seconds
DRIVE_UPLOAD_URL_TTL = config('DRIVE_UPLOAD_URL_TTL', cast=int, default=300)
DRIVE_DOWNLOAD_URL_TTL = config(
    'DRIVE_DOWNLOAD_URL_TTL',
    cast=int,
    default=3600,
)
