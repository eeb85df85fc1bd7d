# tradewatch/base_agent.py
import asyncio
import logging
from dataclasses import replace
from typing import List, Optional

from tradewatch.channels import EventChannel
from tradewatch.datastructures import ERROR, AgentConfig, utcnow

class BaseAgent:
    """
    Lifecycle shared by the monitoring agents.

    start() marks the agent ACTIVE, runs one cycle immediately and then arms a
    periodic task. stop() disarms it: the periodic task notices at its next tick
    boundary, so a cycle already running is never interrupted. A failing cycle
    moves the agent to ERROR and publishes an error event, but the timer stays
    armed and the next tick is a fresh attempt.
    """
    def __init__(self, config: AgentConfig, interval: Optional[float] = None):
        self.config = config
        self.events = EventChannel(config.name)
        if interval is None:
            interval = config.settings.get('update_interval')
        self.interval = interval
        self._active = False
        # Bumped on every start/stop so late cycles can tell they outlived their run
        self._run_id = 0
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    # --- Introspection ---
    @property
    def name(self) -> str:
        return self.config.name

    @property
    def status(self) -> str:
        return self.config.status

    @property
    def symbols(self) -> List[str]:
        return list(self.config.settings.get('symbols', []))

    @property
    def is_armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_status(self) -> AgentConfig:
        """Returns a snapshot of this agent's descriptor."""
        return replace(self.config, settings=dict(self.config.settings))

    def update_settings(self, **settings):
        """Merges new settings. Cycles pick them up from the next tick."""
        self.config.settings.update(settings)
        if 'update_interval' in settings:
            self.interval = settings['update_interval']
        logging.info(f"{self.name}: settings updated {sorted(settings)}")

    def _touch(self):
        self.config.last_updated = utcnow()

    def _publish_if_current(self, run_id: int, event_type: str, payload) -> bool:
        """Publishes unless the agent was stopped or restarted since the cycle began."""
        if run_id != self._run_id:
            logging.info(f"{self.name}: dropping {event_type} from a cycle that outlived its run.")
            return False
        self.events.publish(event_type, payload)
        return True

    # --- Lifecycle ---
    async def start(self):
        logging.info(f"Starting {self.name}...")
        self._active = True
        self._run_id += 1
        self.config.status = 'ACTIVE'
        self._touch()

        await self._run_cycle()

        # stop() may have been called while the first cycle was in flight
        if self._active and not self.is_armed:
            self._arm()

    async def stop(self):
        logging.info(f"Stopping {self.name}...")
        self._active = False
        self._run_id += 1
        if self._stop_event is not None:
            self._stop_event.set()
        self._stop_event = None
        self._task = None
        self.config.status = 'INACTIVE'

    def _arm(self):
        if not self.interval or self.interval <= 0:
            logging.warning(f"{self.name}: no positive update interval, periodic cycles disabled.")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_periodic(self._stop_event), name=f"{self.name}-periodic")

    async def _run_periodic(self, stop_event: asyncio.Event):
        while True:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
                logging.debug(f"{self.name}: periodic task disarmed.")
                return
            except asyncio.TimeoutError:
                pass
            await self._run_cycle()

    async def _run_cycle(self):
        try:
            await self.work_cycle()
        except Exception as e:
            logging.error(f"{self.name}: work cycle failed: {e}", exc_info=True)
            if self._active:
                self.config.status = 'ERROR'
            self.events.publish(ERROR, e)
        else:
            if self.config.status == 'ERROR' and self._active:
                logging.info(f"{self.name}: recovered after a failed cycle.")
                self.config.status = 'ACTIVE'

    async def work_cycle(self):
        """One unit of periodic work. Subclasses override."""
        raise NotImplementedError
