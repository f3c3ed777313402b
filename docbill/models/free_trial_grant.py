"""Free trial grant model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from docbill.models._base import Base


class FreeTrialGrant(Base):
    """One-time free allowance per hashed caller key.

    Each timestamp is written at most once; a set timestamp means the slot is spent.
    """

    __tablename__ = "free_trial_grant"

    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    invoice_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    act_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
