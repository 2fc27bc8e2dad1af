"""Client balance models (salon credit and gift cards)."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String

from app.core.clock import utcnow
from app.persistence.database import Base


class ClientBalance(Base):
    """Stored value held by a client, one row per client."""

    __tablename__ = "client_balances"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    salon_credit_balance = Column(Numeric(10, 2), default=0, nullable=False)
    gift_card_balance = Column(Numeric(10, 2), default=0, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ClientBalance(client_id={self.client_id}, "
            f"salon_credit={self.salon_credit_balance}, gift_card={self.gift_card_balance})>"
        )


class BalanceTransaction(Base):
    """A credit or debit against a client's stored value."""

    __tablename__ = "balance_transactions"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    balance_type = Column(String(30), nullable=False)  # 'salon_credit' or 'gift_card'
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<BalanceTransaction(id={self.id}, client_id={self.client_id}, amount={self.amount})>"
