"""Store (retail outlet) model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smartamenyn.database import Base


class Store(Base):
    __tablename__ = "stores"

    # Chain-prefixed id, e.g. "ica-1004219" or "lidl-national".
    id: Mapped[str] = mapped_column(String(120), primary_key=True)
    chain_id: Mapped[str] = mapped_column(String(20), ForeignKey("chains.id"))
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    city: Mapped[str | None] = mapped_column(String(100))
    profile: Mapped[str | None] = mapped_column(String(50))
    offers_url: Mapped[str | None] = mapped_column(Text)
    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    chain = relationship("Chain", back_populates="stores")
    offers = relationship("Offer", back_populates="store")
