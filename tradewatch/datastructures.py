# tradewatch/datastructures.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

Action = Literal['BUY', 'SELL']
SignalSource = Literal['ANALYSIS', 'NEWS', 'TICKER', 'TRADING']
AgentType = Literal['TICKER', 'ANALYSIS', 'NEWS', 'TRADING']
AgentStatus = Literal['ACTIVE', 'INACTIVE', 'ERROR']
Direction = Literal['BULLISH', 'BEARISH', 'NEUTRAL']

# Event types published on agent and orchestrator channels
PRICE_UPDATE = 'price_update'
ANALYSIS_SIGNAL = 'analysis_signal'
NEWS_SIGNAL = 'news_signal'
TRADE_EXECUTED = 'trade_executed'
ERROR = 'error'
STARTED = 'started'
STOPPED = 'stopped'


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Bar:
    """One OHLCV sample. Derived fields are attached by building a new Bar."""
    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int = 0
    pattern: Optional[str] = None
    pattern_direction: Optional[Direction] = None
    sma200: Optional[float] = None
    ema12: Optional[float] = None
    ema26: Optional[float] = None

    def __post_init__(self):
        if self.close < 0:
            raise ValueError(f"Bar close must be non-negative, got {self.close}")
        if self.volume < 0:
            raise ValueError(f"Bar volume must be non-negative, got {self.volume}")


@dataclass
class SignalAnalysis:
    """Optional reasoning attached to a signal by the Analysis or News agent."""
    sentiment: Optional[Direction] = None
    key_events: List[str] = field(default_factory=list)
    reasoning: str = ''
    impact_magnitude: Optional[float] = None
    impact_timeframe: Optional[str] = None


@dataclass
class TradeSignal:
    """A proposed BUY/SELL with its confidence and provenance."""
    symbol: str
    action: Action
    price: float
    confidence: float
    timestamp: datetime = field(default_factory=utcnow)
    source: SignalSource = 'ANALYSIS'
    analysis: Optional[SignalAnalysis] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    def __post_init__(self):
        if self.action not in ('BUY', 'SELL'):
            raise ValueError(f"Unsupported signal action: {self.action}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Signal confidence must be within [0, 1], got {self.confidence}")


@dataclass(frozen=True)
class Position:
    """Current holding for one symbol."""
    symbol: str
    quantity: int
    average_price: float
    current_price: float
    unrealized_pnl: float = 0.0

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price


@dataclass
class AgentConfig:
    """Descriptor of one agent. Only the owning agent mutates it."""
    name: str
    type: AgentType
    status: AgentStatus = 'INACTIVE'
    last_updated: datetime = field(default_factory=utcnow)
    settings: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceUpdate:
    """Represents the latest price sample for a symbol."""
    symbol: str
    bar: Bar

    @property
    def price(self) -> float:
        return self.bar.close


@dataclass(frozen=True)
class TradeExecution:
    """Emitted after the Trading agent applies a signal.

    ``quantity`` is the position size *after* the trade: a full SELL reports 0.
    """
    symbol: str
    action: Action
    price: float
    quantity: int
    timestamp: datetime
    source: SignalSource
    reasoning: str = ''
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    risk_level: Optional[str] = None


@dataclass(frozen=True)
class AgentErrorReport:
    agent: str
    error: BaseException


@dataclass(frozen=True)
class AgentEvent:
    """A message on an agent or orchestrator channel."""
    type: str
    source: str
    payload: Any = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class MarketImpact:
    direction: Literal['up', 'down', 'stable']
    magnitude: float
    timeframe: str


@dataclass
class NewsArticle:
    title: str
    source: str = ''
    url: str = ''
    published_at: Optional[datetime] = None
    summary: str = ''


@dataclass
class NewsAnalysis:
    """Per-article analysis returned by the news provider."""
    key_topics: List[str] = field(default_factory=list)
    market_impact: str = ''
    trading_signals: List[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class NewsReport:
    symbol: str
    articles: List[NewsArticle] = field(default_factory=list)
    analyses: List[NewsAnalysis] = field(default_factory=list)


@dataclass
class ClassificationResult:
    """Output of the classification (AI) collaborator."""
    action: Literal['BUY', 'SELL', 'HOLD']
    price: float
    confidence: float
    reasoning: str = ''
    timestamp: datetime = field(default_factory=utcnow)
