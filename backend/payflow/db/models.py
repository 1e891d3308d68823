"""SQLAlchemy 2.0 ORM models for records provisioned at startup.

Only identity records live here: mock fungible tokens and named
custodial accounts.  Balances and transfers belong to the payment
services mounted under /api and are not modelled.
"""

import secrets
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


def new_account_id() -> str:
    return f"acct_{secrets.token_hex(8)}"


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class Token(Base):
    """Fungible token definition. Mock tokens are seeded for local testing."""
    __tablename__ = "tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    symbol: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    decimals: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    is_mock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "is_mock": self.is_mock,
            "created_at": self.created_at.isoformat(),
        }


class CustodialAccount(Base):
    """Account held by the service on behalf of a named user."""
    __tablename__ = "custodial_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    account_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, default=new_account_id
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "account_id": self.account_id,
            "created_at": self.created_at.isoformat(),
        }
