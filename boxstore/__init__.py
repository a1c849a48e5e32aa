"""boxstore: tenant-scoped object storage service."""
