import pytest

from app import OrchestratorService, create_app
from tradewatch.config import OrchestratorConfig
from tradewatch.orchestrator import AgentOrchestrator, InMemoryRunningFlagStore
from tradewatch.providers import SimulatedPriceFeed, no_news


@pytest.fixture
def service():
    orchestrator = AgentOrchestrator(
        OrchestratorConfig(symbols=["AAPL"], update_interval=60),
        price_fetcher=SimulatedPriceFeed(seed=42),
        news_fetcher=no_news,
    )
    orchestrator.set_store(InMemoryRunningFlagStore())
    svc = OrchestratorService(orchestrator)
    yield svc
    if orchestrator.is_running:
        svc.run(orchestrator.stop())
    svc.shutdown()


@pytest.fixture
def client(service):
    app = create_app(service)
    app.config['TESTING'] = True
    return app.test_client()


def test_status_before_start(client):
    response = client.get('/status')
    assert response.status_code == 200
    body = response.get_json()
    assert body['running'] is False
    assert set(body['agents']) == {'ticker', 'analysis', 'news', 'trading'}
    assert body['agents']['trading']['status'] == 'INACTIVE'


def test_start_and_stop(client):
    assert client.post('/stop').status_code == 404

    assert client.post('/start').status_code == 200
    assert client.post('/start').status_code == 409
    body = client.get('/status').get_json()
    assert body['running'] is True
    assert body['agents']['ticker']['status'] == 'ACTIVE'

    assert client.post('/stop').status_code == 200
    assert client.get('/status').get_json()['running'] is False


def test_positions(client):
    body = client.get('/positions').get_json()
    assert body['positions'] == []
    assert body['cash'] == 10000.0
    assert body['portfolio_value'] == 10000.0


def test_config_update(client, service):
    response = client.post('/config', json={'symbols': ['MSFT'], 'min_confidence': 0.8})
    assert response.status_code == 200
    assert service.orchestrator.config.symbols == ['MSFT']

    response = client.post('/config', json={'leverage': 5})
    assert response.status_code == 400
    assert 'leverage' in response.get_json()['error']


@pytest.mark.parametrize("payload", [{'symbols': 'AAPL'}, ['MSFT']])
def test_config_rejects_malformed_payload(client, service, payload):
    response = client.post('/config', json=payload)
    assert response.status_code == 400
    assert service.orchestrator.config.symbols == ['AAPL']
    assert service.orchestrator.ticker_agent.symbols == ['AAPL']
