"""SQLAlchemy model for saved payout recipients.

Rows hold only ciphertext; the plaintext recipient never reaches the table.
Lookups go through a keyed fingerprint of the institution code and account
identifier.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, LargeBinary, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from wallet_gatekeeper.db.session import Base
from wallet_gatekeeper.db.time import utcnow


class SavedRecipient(Base):
    """Encrypted recipient saved by a wallet for repeat payouts."""

    __tablename__ = "saved_recipients"
    __table_args__ = (
        UniqueConstraint(
            "normalized_wallet_address",
            "recipient_fingerprint",
            name="uq_saved_recipients_wallet_fingerprint",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    normalized_wallet_address: Mapped[str] = mapped_column(String(42), index=True, nullable=False)
    recipient_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    encrypted_recipient: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
