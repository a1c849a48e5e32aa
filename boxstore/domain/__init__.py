"""Domain layer: value objects and exceptions.

No dependencies on infrastructure or presentation. Used by the storage
backends and the API layer.
"""

from boxstore.domain.exceptions import BoxstoreException, ValidationException
from boxstore.domain.value_objects import TenantPath, validate_filename

__all__ = [
    # Exceptions
    "BoxstoreException",
    "ValidationException",
    # Value objects
    "TenantPath",
    "validate_filename",
]
