"""Domain value objects for boxstore.

Value objects are immutable types that represent domain concepts with
self-validation. They have no identity, only value.
"""

from dataclasses import dataclass

from boxstore.domain.exceptions import ValidationException

# Characters that would let one segment escape into a sibling key.
_FORBIDDEN_CHARS = ("/", "\\", "\x00")
_MAX_SEGMENT_LENGTH = 255


def validate_segment(value: str, field_name: str) -> str:
    """Validate one key segment (site, box, resource or filename).

    Raises:
        ValidationException: Empty, too long, dot-only, or contains a separator.
    """
    if not value:
        raise ValidationException(f"{field_name} must be a non-empty string", field_name)
    if len(value) > _MAX_SEGMENT_LENGTH:
        raise ValidationException(
            f"{field_name} must not exceed {_MAX_SEGMENT_LENGTH} characters",
            field_name,
        )
    if value in (".", "..") or any(c in value for c in _FORBIDDEN_CHARS):
        raise ValidationException(f"{field_name} contains invalid characters", field_name)
    return value


def validate_filename(filename: str) -> str:
    """Validate a stored filename supplied back by a caller."""
    return validate_segment(filename, "filename")


@dataclass(frozen=True)
class TenantPath:
    """Three-level tenant path (site, box, resource).

    Together the segments form an isolation boundary: objects of one tenant
    path are never addressable through another.
    """

    site_id: str
    box_id: str
    resource_id: str

    def __post_init__(self) -> None:
        validate_segment(self.site_id, "site_id")
        validate_segment(self.box_id, "box_id")
        validate_segment(self.resource_id, "resource_id")

    def segments(self) -> tuple[str, str, str]:
        return (self.site_id, self.box_id, self.resource_id)
