"""ClientMergeLog model for the audit trail of client merges."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.persistence.database import Base


class ClientMergeLog(Base):
    """One merge operation. Append-only; only the undo columns ever change."""

    __tablename__ = "client_merge_logs"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    primary_client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    # Ordered list of secondary client ids, e.g. [12, 7]
    secondary_client_ids = Column(JSON, nullable=False)

    # Identity fields of each secondary before the merge, keyed by str(client_id)
    before_snapshots = Column(JSON, nullable=False)
    primary_before_snapshot = Column(JSON, nullable=True)

    # Operator choices, e.g. {"email": "b@x.com"}
    field_resolutions = Column(JSON, nullable=True)

    # Rows moved per dependent table, e.g. {"appointments": 3}
    reparented_counts = Column(JSON, nullable=True)

    # Older merged shells re-pointed from a secondary onto the primary
    flattened_clients = Column(Integer, default=0, nullable=False)

    performed_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    performed_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    undo_expires_at = Column(DateTime, nullable=False)

    is_undone = Column(Boolean, default=False, nullable=False)
    undone_at = Column(DateTime, nullable=True)
    undone_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Relationships
    primary_client = relationship("Client", foreign_keys=[primary_client_id])
    performer = relationship("User", foreign_keys=[performed_by])

    def __repr__(self) -> str:
        return (
            f"<ClientMergeLog(id={self.id}, primary={self.primary_client_id}, "
            f"secondaries={self.secondary_client_ids}, undone={self.is_undone})>"
        )


class ClientMergeLogMember(Base):
    """One client taking part in a merge, for per-client history lookups."""

    __tablename__ = "client_merge_log_members"

    id = Column(Integer, primary_key=True, index=True)
    merge_log_id = Column(Integer, ForeignKey("client_merge_logs.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # primary, secondary
