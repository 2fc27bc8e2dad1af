"""Point-in-time copy of a client's identity fields."""

from dataclasses import asdict, dataclass, fields
from typing import Any

from app.persistence.models.client import Client


@dataclass(frozen=True)
class ClientSnapshot:
    """Identity fields captured before a merge mutates a client.

    This is also the set of fields an operator may resolve onto the primary.
    """

    first_name: str | None
    last_name: str | None
    email: str | None
    mobile: str | None
    phone: str | None
    notes: str | None
    is_vip: bool
    preferred_stylist_id: int | None
    location_id: int | None

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def capture(cls, client: Client) -> "ClientSnapshot":
        """Copy the identity fields off a loaded client."""
        return cls(**{name: getattr(client, name) for name in cls.field_names()})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientSnapshot":
        """Rebuild a snapshot from its JSON form.

        Raises:
            ValueError: If the payload is missing fields or carries unknown ones
        """
        names = set(cls.field_names())
        missing = names - data.keys()
        unknown = data.keys() - names
        if missing or unknown:
            raise ValueError(
                f"Malformed client snapshot (missing={sorted(missing)}, unknown={sorted(unknown)})"
            )
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_to(self, client: Client) -> None:
        """Write every captured field back onto ``client``."""
        for name, value in self.to_dict().items():
            setattr(client, name, value)


SNAPSHOT_FIELDS = ClientSnapshot.field_names()
