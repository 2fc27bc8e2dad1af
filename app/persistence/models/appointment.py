"""Appointment model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String

from app.core.clock import utcnow
from app.persistence.database import Base


class Appointment(Base):
    """A booked or completed service visit for a client."""

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    stylist_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    location_id = Column(Integer, nullable=True)
    service_name = Column(String(255), nullable=True)
    starts_at = Column(DateTime, nullable=True)
    total_price = Column(Numeric(10, 2), nullable=True)
    status = Column(String(30), default="booked", nullable=False)  # booked, completed, cancelled, no_show
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, client_id={self.client_id}, starts_at={self.starts_at})>"


class ArchivedAppointment(Base):
    """An appointment moved out of the live calendar."""

    __tablename__ = "archived_appointments"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    service_name = Column(String(255), nullable=True)
    starts_at = Column(DateTime, nullable=True)
    archived_at = Column(DateTime, default=utcnow, nullable=False)


class ExternalAppointment(Base):
    """Appointment synced from the upstream booking system.

    Rows reference the client by the booking system's own client id
    (``Client.external_client_id``), not by our primary key.
    """

    __tablename__ = "external_appointments"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    external_appointment_id = Column(String(100), nullable=False)
    external_client_id = Column(String(100), nullable=True, index=True)
    service_name = Column(String(255), nullable=True)
    starts_at = Column(DateTime, nullable=True)
    synced_at = Column(DateTime, default=utcnow, nullable=False)
