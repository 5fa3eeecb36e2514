from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class PortfolioSettings(Base):
    """Single-row table (id=1) for display toggles, FX rates and the risk-free rate."""
    __tablename__ = "portfolio_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    hide_balances: Mapped[bool] = mapped_column(default=False)
    hide_dust: Mapped[bool] = mapped_column(default=False)
    risk_free_rate: Mapped[float] = mapped_column(default=0.05)
    fx_rates: Mapped[dict] = mapped_column(JSON, default=dict)
