from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class AccountRecord(Base):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128))
    data_source: Mapped[str] = mapped_column(String(32))
    data: Mapped[dict] = mapped_column(JSON)
