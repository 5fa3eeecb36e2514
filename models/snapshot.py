from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class SnapshotRecord(Base):
    __tablename__ = "net_worth_snapshots"

    # one row per calendar day
    date: Mapped[str] = mapped_column(String(10), primary_key=True)
    data: Mapped[dict] = mapped_column(JSON)
