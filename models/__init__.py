from .position import PositionRecord
from .account import AccountRecord
from .custom_price import CustomPriceRecord
from .transaction import TransactionRecord
from .snapshot import SnapshotRecord
from .portfolio_settings import PortfolioSettings
