"""Chain (grocery retailer) model."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smartamenyn.database import Base


class Chain(Base):
    __tablename__ = "chains"

    # Chain identifier as used by the scrapers: "ica", "hemkop", "coop", "lidl".
    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    base_url: Mapped[str | None] = mapped_column(Text)

    stores = relationship("Store", back_populates="chain")
    offers = relationship("Offer", back_populates="chain")
