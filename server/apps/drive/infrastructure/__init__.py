"""Infrastructure layer for drive app.

This package contains integrations with external systems:
- Blob store backend (S3/MinIO) with presigned URLs
- Storage key and content type helpers

Keep infrastructure concerns separate from business logic.
"""
