# tradewatch/risk.py
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from tradewatch.datastructures import Bar
from tradewatch.indicators import atr, sma, to_frame
from tradewatch.trend import determine_volume_trend, find_key_levels, volume_change_percent

KELLY_CAP = 0.25
BASE_LEVERAGE = 3.0
SWING_WINDOW = 20
STOP_ATR_MULTIPLIER = 1.0
TARGET_ATR_MULTIPLIER = 1.5

RISK_WEIGHTS = {
    'Market Volatility': 0.25,
    'Trend Strength': 0.20,
    'Volume Profile': 0.15,
    'Position Sizing': 0.25,
    'Risk/Reward Ratio': 0.15,
}

# Upper bounds (exclusive) of each risk label; anything above is EXTREME
RISK_LEVELS = (
    (0.3, 'LOW'),
    (0.6, 'MEDIUM'),
    (0.8, 'HIGH'),
)


@dataclass(frozen=True)
class VolatilityMetrics:
    historical_volatility: float
    average_true_range: float
    price_swing_percentage: float

@dataclass(frozen=True)
class TechnicalContext:
    trend_strength: float
    support_levels: List[float]
    resistance_levels: List[float]
    volume_trend: str
    volume_change: float

@dataclass(frozen=True)
class PositionRiskMetrics:
    max_position_size: float
    risk_per_trade: float
    suggested_leverage: float
    current_exposure: float

@dataclass(frozen=True)
class RiskFactor:
    factor: str
    impact: str
    description: str
    score: float

@dataclass
class RiskAssessmentParams:
    bars: Sequence[Bar]
    symbol: str
    entry_price: float
    position_size: float
    account_balance: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    def __post_init__(self):
        if not self.symbol:
            raise ValueError("symbol is required")
        if self.entry_price <= 0:
            raise ValueError(f"entry_price must be positive, got {self.entry_price}")
        if self.position_size <= 0:
            raise ValueError(f"position_size must be positive, got {self.position_size}")
        if len(self.bars) < 2:
            raise ValueError("at least two bars are required for a risk assessment")

@dataclass(frozen=True)
class RiskAssessment:
    risk_level: str
    risk_score: float
    max_position_size: float
    stop_loss: float
    take_profit: float
    risk_reward_ratio: float
    potential_loss: float
    potential_gain: float
    volatility: VolatilityMetrics
    technical: TechnicalContext
    position: PositionRiskMetrics
    risk_factors: List[RiskFactor] = field(default_factory=list)


def risk_level_for(score: float) -> str:
    for upper, label in RISK_LEVELS:
        if score < upper:
            return label
    return 'EXTREME'


def derive_stop_and_target(
    entry_price: float,
    average_true_range: float,
    support_levels: Sequence[float],
    resistance_levels: Sequence[float],
) -> Tuple[float, float]:
    """
    Stop is the lower of an ATR offset below entry and the nearest support under
    entry; target is the higher of an ATR offset above entry and the nearest
    resistance over entry.
    """
    stop = entry_price - STOP_ATR_MULTIPLIER * average_true_range
    below = [level for level in support_levels if level < entry_price]
    if below:
        stop = min(stop, max(below))

    target = entry_price + TARGET_ATR_MULTIPLIER * average_true_range
    above = [level for level in resistance_levels if level > entry_price]
    if above:
        target = max(target, min(above))
    return stop, target


class RiskEngine:
    """Volatility, sizing and composite risk scoring for a prospective long trade."""

    def returns(self, bars: Sequence[Bar]) -> np.ndarray:
        closes = to_frame(bars)['close'].to_numpy(dtype=float)
        if len(closes) < 2:
            return np.array([])
        previous = closes[:-1]
        with np.errstate(divide='ignore', invalid='ignore'):
            r = (closes[1:] - previous) / previous
        return r[np.isfinite(r)]

    def calculate_volatility_metrics(self, bars: Sequence[Bar]) -> VolatilityMetrics:
        r = self.returns(bars)
        df = to_frame(bars)
        recent = df.tail(SWING_WINDOW)
        lowest = float(recent['low'].min()) if not recent.empty else 0.0
        highest = float(recent['high'].max()) if not recent.empty else 0.0
        return VolatilityMetrics(
            historical_volatility=float(r.std()) if len(r) else 0.0,
            average_true_range=atr(df).value,
            price_swing_percentage=(highest - lowest) / lowest * 100.0 if lowest > 0 else 0.0,
        )

    def calculate_trend_strength(self, bars: Sequence[Bar]) -> float:
        """Mean of close/SMA20 and close/SMA50; 1.0 is neutral."""
        df = to_frame(bars)
        price = float(df['close'].iloc[-1])
        ratios = [price / avg for avg in (sma(df, 20), sma(df, 50)) if avg > 0]
        return float(np.mean(ratios)) if ratios else 1.0

    def analyze_technical_context(self, bars: Sequence[Bar]) -> TechnicalContext:
        support, resistance = find_key_levels(bars)
        return TechnicalContext(
            trend_strength=self.calculate_trend_strength(bars),
            support_levels=support,
            resistance_levels=resistance,
            volume_trend=determine_volume_trend(bars),
            volume_change=volume_change_percent(bars),
        )

    def calculate_max_position_size(self, bars: Sequence[Bar], account_balance: Optional[float]) -> float:
        """Capped Kelly fraction of the account balance."""
        if not account_balance:
            return 0.0
        r = self.returns(bars)
        wins = r[r > 0]
        losses = r[r < 0]
        if len(wins) == 0 or len(losses) == 0:
            return 0.0
        win_rate = len(wins) / len(r)
        avg_win = float(wins.mean())
        avg_loss = abs(float(losses.mean()))
        kelly = win_rate / avg_loss - (1 - win_rate) / avg_win
        return account_balance * max(0.0, min(kelly, KELLY_CAP))

    def calculate_position_risk(self, params: RiskAssessmentParams) -> PositionRiskMetrics:
        volatility = self.calculate_volatility_metrics(params.bars)
        risk_per_trade = 0.0
        if params.stop_loss:
            risk_per_trade = (params.entry_price - params.stop_loss) * params.position_size
        leverage = max(1.0, BASE_LEVERAGE * max(0.0, 1.0 - volatility.historical_volatility))
        return PositionRiskMetrics(
            max_position_size=self.calculate_max_position_size(params.bars, params.account_balance),
            risk_per_trade=risk_per_trade,
            suggested_leverage=leverage,
            current_exposure=params.position_size / (params.account_balance or params.position_size),
        )

    def _risk_factors(
        self,
        volatility: VolatilityMetrics,
        technical: TechnicalContext,
        position: PositionRiskMetrics,
        risk_reward: float,
    ) -> List[RiskFactor]:
        hv = volatility.historical_volatility
        factors = [RiskFactor(
            'Market Volatility',
            'NEGATIVE' if hv > 0.2 else 'POSITIVE' if hv < 0.1 else 'NEUTRAL',
            f"Historical volatility is {hv * 100:.2f}%",
            min(1.0, hv),
        )]

        ts = technical.trend_strength
        factors.append(RiskFactor(
            'Trend Strength',
            'POSITIVE' if ts > 1.1 else 'NEGATIVE' if ts < 0.9 else 'NEUTRAL',
            f"Market trend strength is {ts:.2f}",
            min(1.0, abs(1.0 - ts)),
        ))

        volume_scores = {'INCREASING': (0.3, 'POSITIVE'), 'DECREASING': (0.7, 'NEGATIVE'), 'NEUTRAL': (0.5, 'NEUTRAL')}
        score, impact = volume_scores[technical.volume_trend]
        factors.append(RiskFactor(
            'Volume Profile',
            impact,
            f"Volume is {technical.volume_trend.lower()} with {technical.volume_change:.2f}% change",
            score,
        ))

        # Without a Kelly size any capital at risk is treated as maximal
        if position.max_position_size > 0:
            usage = position.risk_per_trade / position.max_position_size
        else:
            usage = 1.0 if position.risk_per_trade > 0 else 0.0
        factors.append(RiskFactor(
            'Position Sizing',
            'NEGATIVE' if usage > 1 else 'POSITIVE' if usage < 0.5 else 'NEUTRAL',
            f"Position risk is {usage * 100:.2f}% of maximum",
            min(1.0, max(0.0, usage)),
        ))

        factors.append(RiskFactor(
            'Risk/Reward Ratio',
            'POSITIVE' if risk_reward >= 2 else 'NEGATIVE' if risk_reward < 1 else 'NEUTRAL',
            f"Risk/Reward ratio is {risk_reward:.2f}",
            0.3 if risk_reward >= 2 else 0.8 if risk_reward < 1 else 0.5,
        ))
        return factors

    def composite_score(self, factors: Sequence[RiskFactor]) -> float:
        score = sum(f.score * RISK_WEIGHTS.get(f.factor, 0.0) for f in factors)
        return min(1.0, score)

    def assess(self, params: RiskAssessmentParams) -> RiskAssessment:
        volatility = self.calculate_volatility_metrics(params.bars)
        technical = self.analyze_technical_context(params.bars)

        derived_stop, derived_target = derive_stop_and_target(
            params.entry_price,
            volatility.average_true_range,
            technical.support_levels,
            technical.resistance_levels,
        )
        stop = params.stop_loss or derived_stop
        target = params.take_profit or derived_target

        sized = RiskAssessmentParams(
            bars=params.bars,
            symbol=params.symbol,
            entry_price=params.entry_price,
            position_size=params.position_size,
            account_balance=params.account_balance,
            stop_loss=stop,
            take_profit=target,
        )
        position = self.calculate_position_risk(sized)

        downside = params.entry_price - stop
        upside = target - params.entry_price
        risk_reward = upside / downside if downside > 0 else 0.0

        factors = self._risk_factors(volatility, technical, position, risk_reward)
        score = self.composite_score(factors)
        level = risk_level_for(score)
        logging.debug(f"RISK {params.symbol}: score={score:.3f} level={level} stop={stop:.2f} target={target:.2f}")

        return RiskAssessment(
            risk_level=level,
            risk_score=score,
            max_position_size=position.max_position_size,
            stop_loss=stop,
            take_profit=target,
            risk_reward_ratio=risk_reward,
            potential_loss=downside * params.position_size,
            potential_gain=upside * params.position_size,
            volatility=volatility,
            technical=technical,
            position=position,
            risk_factors=factors,
        )
