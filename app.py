# app.py
import asyncio
import logging
import threading
from dataclasses import asdict

from flask import Flask, jsonify, request

from main import build_orchestrator
from tradewatch.logger import setup_logging
from tradewatch.orchestrator import AgentOrchestrator

class OrchestratorService:
    """
    Runs the orchestrator on a dedicated event-loop thread so that the
    synchronous Flask views can drive it.
    """
    def __init__(self, orchestrator: AgentOrchestrator):
        self.orchestrator = orchestrator
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run_loop, name="orchestrator-loop", daemon=True)
        self.thread.start()

    def _run_loop(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def run(self, coro, timeout: float = 60.0):
        """Runs a coroutine on the orchestrator loop and waits for its result."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def shutdown(self):
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=5)


def create_app(service: OrchestratorService = None) -> Flask:
    app = Flask(__name__)
    app.config['service'] = service or OrchestratorService(build_orchestrator())

    def orchestrator() -> AgentOrchestrator:
        return app.config['service'].orchestrator

    @app.route('/status', methods=['GET'])
    def status():
        """Reports whether the orchestrator is running and each agent's state."""
        agents = {
            key: {
                'name': cfg.name,
                'type': cfg.type,
                'status': cfg.status,
                'last_updated': cfg.last_updated.isoformat(),
            }
            for key, cfg in orchestrator().get_agent_statuses().items()
        }
        return jsonify({"running": orchestrator().is_running, "agents": agents}), 200

    @app.route('/positions', methods=['GET'])
    def positions():
        trading = orchestrator().trading_agent
        return jsonify({
            "positions": [asdict(p) for p in orchestrator().get_positions()],
            "cash": trading.get_cash(),
            "portfolio_value": trading.get_portfolio_value(),
        }), 200

    @app.route('/start', methods=['POST'])
    def start():
        if orchestrator().is_running:
            return jsonify({"status": "already_running"}), 409
        try:
            app.config['service'].run(orchestrator().start())
        except Exception as e:
            logging.error(f"Failed to start orchestrator: {e}", exc_info=True)
            return jsonify({"status": "error", "error": str(e)}), 500
        return jsonify({"status": "started"}), 200

    @app.route('/stop', methods=['POST'])
    def stop():
        if not orchestrator().is_running:
            return jsonify({"status": "not_running"}), 404
        try:
            app.config['service'].run(orchestrator().stop())
        except Exception as e:
            logging.error(f"Failed to stop orchestrator: {e}", exc_info=True)
            return jsonify({"status": "error", "error": str(e)}), 500
        return jsonify({"status": "stopped"}), 200

    async def apply_config(partial: dict):
        orchestrator().update_config(**partial)

    @app.route('/config', methods=['POST'])
    def update_config():
        partial = request.get_json(silent=True) or {}
        if not isinstance(partial, dict):
            return jsonify({"status": "error", "error": "expected a JSON object"}), 400
        try:
            # Agent settings are only touched from the orchestrator loop
            app.config['service'].run(apply_config(partial))
        except (TypeError, ValueError) as e:
            return jsonify({"status": "error", "error": str(e)}), 400
        return jsonify({"status": "updated"}), 200

    return app


if __name__ == '__main__':
    setup_logging()
    create_app().run(host='0.0.0.0', port=8000)
