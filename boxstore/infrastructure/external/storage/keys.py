"""Tenant key namespace: maps a tenant path (and filename) to a flat object key.

Keys always have exactly four segments: site/box/resource/filename.
"""

from boxstore.domain.value_objects import TenantPath

KEY_SEPARATOR = "/"


def prefix_for(tenant: TenantPath) -> str:
    """Return the key prefix of a tenant path, with trailing separator."""
    return KEY_SEPARATOR.join(tenant.segments()) + KEY_SEPARATOR


def key_for(tenant: TenantPath, filename: str) -> str:
    """Return the object key of filename under a tenant path."""
    return prefix_for(tenant) + filename
