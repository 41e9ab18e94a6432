from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text, false, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class Token(Base):
    """One pump.fun token, keyed by both its mint and its bonding curve."""

    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(primary_key=True)
    bonding_curve_address: Mapped[str] = mapped_column(String(64), unique=True)
    token_address: Mapped[str] = mapped_column(String(64), unique=True)
    complete: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    creator: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(Text)
    symbol: Mapped[str] = mapped_column(Text)
    uri: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    image: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_tokens_symbol", "symbol"),
        Index("idx_tokens_name", "name"),
        Index("idx_tokens_complete", "complete"),
        Index("idx_tokens_creator", "creator"),
        Index("idx_tokens_created_at", "created_at"),
    )
