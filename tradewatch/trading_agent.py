# tradewatch/trading_agent.py
import logging
import math
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from tradewatch.analysis_agent import BarHistory
from tradewatch.base_agent import BaseAgent
from tradewatch.datastructures import (
    ERROR, TRADE_EXECUTED, AgentConfig, Bar, Position, PriceUpdate, TradeExecution, TradeSignal, utcnow,
)
from tradewatch.risk import RiskAssessmentParams, RiskEngine

MIN_RISK_BARS = 20


class TradingAgent(BaseAgent):
    """
    Applies trade signals to a simulated cash + positions ledger.
    This agent is the only writer of positions; every change is committed as a
    single swap of (cash, positions) so readers never see a half-applied trade.
    """
    def __init__(self, config: AgentConfig, initial_cash: float = 0.0, risk_engine: Optional[RiskEngine] = None):
        super().__init__(config)
        self._cash = float(initial_cash)
        self._positions: Dict[str, Position] = {}
        self.total_value = self._cash
        self.history = BarHistory()
        self.risk_engine = risk_engine or RiskEngine()

    # --- Settings ---
    @property
    def min_confidence(self) -> float:
        return float(self.config.settings.get('min_confidence', 0.0))

    @property
    def max_position_size(self) -> float:
        return float(self.config.settings.get('max_position_size', 0.0))

    # --- Lifecycle: reacts to signals only, nothing to poll ---
    async def start(self):
        logging.info(f"Starting {self.name}...")
        self._active = True
        self.config.status = 'ACTIVE'
        self._touch()

    async def work_cycle(self):
        return None

    # --- Queries ---
    def get_positions(self) -> List[Position]:
        return list(self._positions.values())

    def get_position(self, symbol: str) -> Optional[Position]:
        return self._positions.get(symbol)

    def get_cash(self) -> float:
        return self._cash

    def get_portfolio_value(self) -> float:
        return self.total_value

    def get_last_price(self, symbol: str) -> Optional[float]:
        bars = self.history.get(symbol, 1)
        return bars[-1].close if bars else None

    def _commit(self, cash: float, positions: Dict[str, Position]):
        self._cash, self._positions = cash, positions
        self.total_value = cash + sum(p.market_value for p in positions.values())

    # --- Signal handling ---
    async def handle_trade_signal(self, signal: TradeSignal) -> Optional[TradeExecution]:
        try:
            if signal.confidence < self.min_confidence:
                logging.info(f"{self.name}: ignoring low confidence signal for {signal.symbol} ({signal.confidence:.2f})")
                return None
            if signal.price <= 0:
                logging.warning(f"{self.name}: ignoring {signal.action} {signal.symbol} without a valid price.")
                return None

            if signal.action == 'BUY':
                execution = self._execute_buy(signal)
            else:
                execution = self._execute_sell(signal)

            if execution is None:
                return None

            self._touch()
            if self._active and self.config.status == 'ERROR':
                logging.info(f"{self.name}: recovered after a failed signal.")
                self.config.status = 'ACTIVE'
            logging.info(
                f"{self.name}: executed {execution.action} {execution.symbol} @ {execution.price:.2f}, "
                f"position now {execution.quantity} shares, cash {self._cash:.2f}"
            )
            self.events.publish(TRADE_EXECUTED, execution)
            return execution
        except Exception as e:
            logging.error(f"{self.name}: error handling trade signal {signal}: {e}", exc_info=True)
            self.config.status = 'ERROR'
            self.events.publish(ERROR, e)
            return None

    def _protective_levels(self, signal: TradeSignal, shares: int) -> Tuple[Optional[float], Optional[float], Optional[str]]:
        if signal.stop_loss and signal.take_profit:
            return signal.stop_loss, signal.take_profit, None
        bars = self.history.get(signal.symbol)
        if len(bars) < MIN_RISK_BARS:
            return signal.stop_loss, signal.take_profit, None

        assessment = self.risk_engine.assess(RiskAssessmentParams(
            bars=bars,
            symbol=signal.symbol,
            entry_price=signal.price,
            position_size=shares,
            account_balance=self._cash,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
        ))
        if assessment.risk_level == 'EXTREME':
            logging.warning(f"{self.name}: {signal.symbol} entry assessed as EXTREME risk (score {assessment.risk_score:.2f})")
        return assessment.stop_loss, assessment.take_profit, assessment.risk_level

    def _execute_buy(self, signal: TradeSignal) -> Optional[TradeExecution]:
        existing = self._positions.get(signal.symbol)
        current_exposure = existing.quantity * existing.average_price if existing else 0.0
        remaining_capacity = self.max_position_size - current_exposure

        if remaining_capacity <= 0:
            logging.info(f"{self.name}: maximum position size reached for {signal.symbol}")
            return None

        shares = math.floor(min(self._cash, remaining_capacity) / signal.price)
        if shares <= 0:
            logging.info(f"{self.name}: insufficient funds to buy {signal.symbol}")
            return None

        stop_loss, take_profit, risk_level = self._protective_levels(signal, shares)

        cost = shares * signal.price
        if existing:
            quantity = existing.quantity + shares
            average = (existing.quantity * existing.average_price + cost) / quantity
        else:
            quantity, average = shares, signal.price

        position = Position(
            symbol=signal.symbol,
            quantity=quantity,
            average_price=average,
            current_price=signal.price,
            unrealized_pnl=(signal.price - average) * quantity,
        )
        positions = dict(self._positions)
        positions[signal.symbol] = position
        self._commit(self._cash - cost, positions)

        return TradeExecution(
            symbol=signal.symbol,
            action='BUY',
            price=signal.price,
            quantity=quantity,
            timestamp=utcnow(),
            source=signal.source,
            reasoning=signal.analysis.reasoning if signal.analysis else '',
            stop_loss=stop_loss,
            take_profit=take_profit,
            risk_level=risk_level,
        )

    def _execute_sell(self, signal: TradeSignal) -> Optional[TradeExecution]:
        existing = self._positions.get(signal.symbol)
        if existing is None or existing.quantity <= 0:
            logging.info(f"{self.name}: no position to sell for {signal.symbol}")
            return None

        proceeds = existing.quantity * signal.price
        positions = dict(self._positions)
        del positions[signal.symbol]
        self._commit(self._cash + proceeds, positions)

        return TradeExecution(
            symbol=signal.symbol,
            action='SELL',
            price=signal.price,
            quantity=0,
            timestamp=utcnow(),
            source=signal.source,
            reasoning=signal.analysis.reasoning if signal.analysis else '',
        )

    # --- Passive recalculation ---
    def on_price_update(self, update: PriceUpdate):
        self.history.add(update.bar)
        if update.symbol in self._positions:
            self.update_portfolio_value([update.bar])

    def update_portfolio_value(self, bars: Sequence[Bar]) -> float:
        """Marks positions to the given prices. Never trades."""
        positions = dict(self._positions)
        for bar in bars:
            position = positions.get(bar.symbol)
            if position is None:
                continue
            positions[bar.symbol] = replace(
                position,
                current_price=bar.close,
                unrealized_pnl=(bar.close - position.average_price) * position.quantity,
            )
        self._commit(self._cash, positions)
        return self.total_value
