import pytest

from tests.conftest import make_bar
from tradewatch.datastructures import ERROR, TRADE_EXECUTED, AgentConfig, PriceUpdate, SignalAnalysis, TradeSignal
from tradewatch.trading_agent import TradingAgent


def _signal(action, price, confidence=0.9, symbol="AAPL", **kwargs):
    return TradeSignal(symbol=symbol, action=action, price=price, confidence=confidence, **kwargs)


def _agent(max_position_size, cash=10000.0, min_confidence=0.5):
    config = AgentConfig(
        name="Trading Agent",
        type="TRADING",
        settings={"symbols": ["AAPL"], "min_confidence": min_confidence, "max_position_size": max_position_size},
    )
    return TradingAgent(config, initial_cash=cash)


@pytest.fixture
def agent(trading_config):
    return TradingAgent(trading_config, initial_cash=10000.0)


@pytest.mark.asyncio
async def test_buy_is_capped_by_max_position_size(agent):
    events = agent.events.subscribe()

    execution = await agent.handle_trade_signal(_signal("BUY", 100.0))

    assert execution.quantity == 50
    assert agent.get_cash() == pytest.approx(5000.0)
    position = agent.get_position("AAPL")
    assert (position.quantity, position.average_price) == (50, 100.0)
    assert agent.get_portfolio_value() == pytest.approx(10000.0)
    event = events.get_nowait()
    assert event.type == TRADE_EXECUTED
    assert event.payload is execution


@pytest.mark.asyncio
async def test_sell_liquidates_whole_position():
    agent = _agent(max_position_size=1000.0)
    await agent.handle_trade_signal(_signal("BUY", 100.0))
    assert agent.get_position("AAPL").quantity == 10

    execution = await agent.handle_trade_signal(_signal("SELL", 120.0))

    assert agent.get_position("AAPL") is None
    assert agent.get_cash() == pytest.approx(10200.0)
    assert execution.action == "SELL"
    assert execution.quantity == 0


@pytest.mark.asyncio
async def test_repeated_buys_average_the_cost():
    agent = _agent(max_position_size=1000.0)
    await agent.handle_trade_signal(_signal("BUY", 100.0))
    agent.update_settings(max_position_size=2200.0)

    execution = await agent.handle_trade_signal(_signal("BUY", 120.0))

    position = agent.get_position("AAPL")
    assert position.quantity == 20
    assert position.average_price == pytest.approx(110.0)
    # Reported quantity is the position after the trade
    assert execution.quantity == 20
    assert agent.get_cash() == pytest.approx(10000.0 - 1000.0 - 1200.0)


@pytest.mark.asyncio
async def test_low_confidence_signal_is_discarded(agent):
    events = agent.events.subscribe()
    assert await agent.handle_trade_signal(_signal("BUY", 100.0, confidence=0.4)) is None
    assert agent.get_positions() == []
    assert agent.get_cash() == 10000.0
    assert events.empty()


@pytest.mark.asyncio
async def test_aborted_trades_emit_nothing():
    agent = _agent(max_position_size=1000.0, cash=50.0)
    events = agent.events.subscribe()

    assert await agent.handle_trade_signal(_signal("BUY", 100.0)) is None    # insufficient funds
    assert await agent.handle_trade_signal(_signal("SELL", 100.0)) is None   # nothing held
    assert await agent.handle_trade_signal(_signal("BUY", 0.0)) is None      # no usable price
    assert events.empty()
    assert agent.get_cash() == 50.0


@pytest.mark.asyncio
async def test_buy_rejected_once_capacity_is_used():
    agent = _agent(max_position_size=1000.0)
    await agent.handle_trade_signal(_signal("BUY", 100.0))
    assert await agent.handle_trade_signal(_signal("BUY", 50.0)) is None
    assert agent.get_position("AAPL").quantity == 10


@pytest.mark.asyncio
async def test_execution_carries_reasoning_and_source(agent):
    signal = _signal("BUY", 100.0, source="NEWS", analysis=SignalAnalysis(reasoning="earnings beat"))
    execution = await agent.handle_trade_signal(signal)
    assert execution.source == "NEWS"
    assert execution.reasoning == "earnings beat"


@pytest.mark.asyncio
async def test_buy_attaches_risk_levels_with_enough_history(agent, rising_bars):
    for bar in rising_bars:
        agent.on_price_update(PriceUpdate(symbol=bar.symbol, bar=bar))

    execution = await agent.handle_trade_signal(_signal("BUY", 159.0))

    assert execution.stop_loss < 159.0 < execution.take_profit
    assert execution.risk_level in ("LOW", "MEDIUM", "HIGH", "EXTREME")


@pytest.mark.asyncio
async def test_failure_sets_error_and_publishes(agent):
    events = agent.events.subscribe()

    def boom(signal):
        raise RuntimeError("ledger unavailable")

    agent._execute_buy = boom
    assert await agent.handle_trade_signal(_signal("BUY", 100.0)) is None
    assert agent.status == "ERROR"
    event = events.get_nowait()
    assert event.type == ERROR
    assert isinstance(event.payload, RuntimeError)


@pytest.mark.asyncio
async def test_mark_to_market_never_trades():
    agent = _agent(max_position_size=1000.0)
    await agent.handle_trade_signal(_signal("BUY", 100.0))

    total = agent.update_portfolio_value([make_bar(0, 110.0), make_bar(0, 50.0, symbol="MSFT")])

    assert total == pytest.approx(9000.0 + 1100.0)
    position = agent.get_position("AAPL")
    assert position.quantity == 10
    assert position.current_price == 110.0
    assert position.unrealized_pnl == pytest.approx(100.0)
    assert agent.get_cash() == pytest.approx(9000.0)
    assert agent.get_position("MSFT") is None


@pytest.mark.asyncio
async def test_price_update_marks_position_and_records_last_price():
    agent = _agent(max_position_size=1000.0)
    await agent.handle_trade_signal(_signal("BUY", 100.0))

    agent.on_price_update(PriceUpdate(symbol="AAPL", bar=make_bar(1, 105.0)))

    assert agent.get_last_price("AAPL") == 105.0
    assert agent.get_portfolio_value() == pytest.approx(9000.0 + 1050.0)
    assert agent.get_last_price("MSFT") is None


@pytest.mark.asyncio
async def test_start_and_stop_toggle_status(agent):
    await agent.start()
    assert agent.status == "ACTIVE"
    assert not agent.is_armed
    await agent.stop()
    assert agent.status == "INACTIVE"


@pytest.mark.asyncio
async def test_successful_trade_clears_error(agent):
    await agent.start()

    def boom(signal):
        raise RuntimeError("ledger unavailable")

    agent._execute_buy = boom
    await agent.handle_trade_signal(_signal("BUY", 100.0))
    assert agent.status == "ERROR"

    del agent._execute_buy
    assert await agent.handle_trade_signal(_signal("BUY", 100.0)) is not None
    assert agent.status == "ACTIVE"
