"""Field resolver: decides the survivor's identity fields after a merge."""

from typing import Any

from app.domain.errors import InvalidFieldResolutionError
from app.domain.models.client_snapshot import SNAPSHOT_FIELDS
from app.persistence.models.client import Client


def _same_value(held: Any, chosen: Any) -> bool:
    # bool is an int subclass, so equality alone lets 1 stand in for True
    return type(held) is type(chosen) and held == chosen


def resolve_fields(
    primary: Client,
    secondaries: list[Client],
    field_resolutions: dict[str, Any] | None,
) -> dict[str, Any]:
    """Compute the field values to write onto the primary.

    Each chosen value must already be held, with the same type, by the
    primary or one of the secondaries for that field; free-form values are
    rejected. Fields not
    named in ``field_resolutions`` keep the primary's value.

    Args:
        primary: The surviving client
        secondaries: Clients being merged into the primary
        field_resolutions: Field name -> chosen value

    Returns:
        Only the fields whose value differs from the primary's current value

    Raises:
        InvalidFieldResolutionError: Unknown field, or value not held by any client
    """
    if not field_resolutions:
        return {}

    candidates = [primary] + list(secondaries)
    updates: dict[str, Any] = {}

    for field, value in field_resolutions.items():
        if field not in SNAPSHOT_FIELDS:
            raise InvalidFieldResolutionError(f"Field '{field}' cannot be resolved during a merge")

        if not any(_same_value(getattr(client, field), value) for client in candidates):
            raise InvalidFieldResolutionError(
                f"Value for '{field}' does not come from any client in the merge"
            )

        if not _same_value(getattr(primary, field), value):
            updates[field] = value

    return updates
