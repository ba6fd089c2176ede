"""Business logic layer for drive app.

This package contains the drive services:
- Folder hierarchy with materialized paths (``folder_tree``)
- Storage quota accounting (``quota_ledger``)
- Upload, delete and metadata lifecycle of files (``file_lifecycle``)

Services receive their collaborators explicitly and hold no state of
their own, separate from models (data layer) and infrastructure
(external systems).
"""
