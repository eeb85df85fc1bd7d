# tradewatch/config.py
import os
import logging
from dataclasses import dataclass, field, fields, replace
from typing import List
from dotenv import load_dotenv

# Load environment variables from a .env file for local development
load_dotenv()


def _split_list(raw: str) -> List[str]:
    return [item.strip().upper() for item in raw.split(',') if item.strip()]


class Config:
    """Main configuration class loading settings from environment variables."""
    # --- Mode ---
    # Set to 'LIVE' to use the HTTP providers instead of the simulated feed
    MODE = os.getenv('MODE', 'SIMULATION')

    # --- Provider endpoints ---
    QUOTE_API_URL = os.getenv('QUOTE_API_URL', '')
    NEWS_API_URL = os.getenv('NEWS_API_URL', '')
    AI_API_URL = os.getenv('AI_API_URL', '')
    API_KEY = os.getenv('API_KEY')
    HTTP_TIMEOUT = float(os.getenv('HTTP_TIMEOUT', 10.0))

    # --- Monitoring ---
    SYMBOLS = _split_list(os.getenv('SYMBOLS', 'AAPL,MSFT'))
    UPDATE_INTERVAL = float(os.getenv('UPDATE_INTERVAL', 60.0)) # Seconds
    NEWS_UPDATE_INTERVAL = float(os.getenv('NEWS_UPDATE_INTERVAL', 900.0))
    NEWS_SOURCES = [s.strip() for s in os.getenv('NEWS_SOURCES', 'finnhub').split(',') if s.strip()]
    DATA_SOURCE = os.getenv('DATA_SOURCE', 'simulated')

    # --- Trading Parameters ---
    MIN_CONFIDENCE = float(os.getenv('MIN_CONFIDENCE', 0.7))
    MAX_POSITION_SIZE = float(os.getenv('MAX_POSITION_SIZE', 100000.0))
    RISK_LIMIT = float(os.getenv('RISK_LIMIT', 0.02)) # Fraction of capital at risk per trade
    INITIAL_CAPITAL = float(os.getenv('INITIAL_CAPITAL', 10000.0))

    # --- Runtime ---
    STATE_FILE = os.getenv('STATE_FILE', './orchestrator_state.json')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # --- Validation ---
    if MODE == 'LIVE' and not QUOTE_API_URL:
        logging.warning("MODE is LIVE but QUOTE_API_URL is not set.")

config = Config()

LIST_FIELDS = {'symbols', 'technical_indicators', 'fundamental_metrics', 'news_sources'}


@dataclass
class OrchestratorConfig:
    """Runtime settings handed explicitly to the orchestrator and its agents."""
    symbols: List[str] = field(default_factory=list)
    update_interval: float = 60.0
    news_update_interval: float = 900.0
    technical_indicators: List[str] = field(default_factory=lambda: ['SMA', 'EMA', 'RSI', 'MACD', 'ATR', 'BB', 'STOCH'])
    fundamental_metrics: List[str] = field(default_factory=list)
    min_confidence: float = 0.7
    max_position_size: float = 100000.0
    risk_limit: float = 0.02
    initial_capital: float = 10000.0
    news_sources: List[str] = field(default_factory=list)
    data_source: str = 'simulated'

    @classmethod
    def from_env(cls, cfg: Config = config) -> 'OrchestratorConfig':
        return cls(
            symbols=list(cfg.SYMBOLS),
            update_interval=cfg.UPDATE_INTERVAL,
            news_update_interval=cfg.NEWS_UPDATE_INTERVAL,
            min_confidence=cfg.MIN_CONFIDENCE,
            max_position_size=cfg.MAX_POSITION_SIZE,
            risk_limit=cfg.RISK_LIMIT,
            initial_capital=cfg.INITIAL_CAPITAL,
            news_sources=list(cfg.NEWS_SOURCES),
            data_source=cfg.DATA_SOURCE,
        )

    def merged(self, **partial) -> 'OrchestratorConfig':
        """Returns a copy with the given fields replaced. Unknown keys raise ValueError."""
        known = {f.name for f in fields(self)}
        unknown = set(partial) - known
        if unknown:
            raise ValueError(f"Unknown config fields: {sorted(unknown)}")
        for key in LIST_FIELDS & set(partial):
            value = partial[key]
            if isinstance(value, str) or not isinstance(value, (list, tuple)):
                raise ValueError(f"{key} must be a list, got {type(value).__name__}")
            partial[key] = list(value)
        return replace(self, **partial)
