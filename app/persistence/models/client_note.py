"""Client note model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text

from app.core.clock import utcnow
from app.persistence.database import Base


class ClientNote(Base):
    """Free-text note a staff member attached to a client."""

    __tablename__ = "client_notes"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ClientNote(id={self.id}, client_id={self.client_id})>"
