"""Client model."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.persistence.database import Base


class ClientStatus(str, Enum):
    """Merge state of a client record."""

    ACTIVE = "active"
    MERGED = "merged"


class Client(Base):
    """Client model representing a salon customer profile."""

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    # Identity
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    mobile = Column(String(50), nullable=True, index=True)
    phone = Column(String(50), nullable=True)

    # Preferences
    preferred_stylist_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    location_id = Column(Integer, nullable=True)

    notes = Column(Text, nullable=True)
    is_vip = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Id of the record in the upstream booking system, if synced
    external_client_id = Column(String(100), nullable=True, index=True)

    # Merge state
    status = Column(String(20), default=ClientStatus.ACTIVE.value, nullable=False, index=True)
    merged_into_client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    merged_at = Column(DateTime, nullable=True)
    merged_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    merge_log_id = Column(Integer, nullable=True, index=True)  # Log entry that produced the merged state

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="clients")

    @property
    def is_merged(self) -> bool:
        return self.status == ClientStatus.MERGED.value

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, organization_id={self.organization_id}, email={self.email}, status={self.status})>"
