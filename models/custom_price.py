from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class CustomPriceRecord(Base):
    __tablename__ = "custom_prices"

    symbol: Mapped[str] = mapped_column(String(64), primary_key=True)  # lowercase
    price: Mapped[float] = mapped_column()
    note: Mapped[str | None] = mapped_column(String(200), nullable=True)
    set_at: Mapped[str] = mapped_column(String(40))
