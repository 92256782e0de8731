# compactflow/server/host.py
import asyncio
import logging
from datetime import date, datetime, UTC
from typing import Callable, Optional

import uvicorn

from compactflow.common.exceptions import ListenerError
from compactflow.dashboard.app import create_app
from compactflow.service import CompactionService

logger = logging.getLogger(__name__)

# uvicorn ticks every 100ms; sweep checks once a second.
_SWEEP_CHECK_TICKS = 10


class AcceptLoop(uvicorn.Server):
    """
    The uvicorn server with the daily retention sweep hooked into its tick.

    uvicorn's main loop wakes every 100ms and stops once ``should_exit`` is
    set, so a shutdown request is observed within one tick.
    """

    def __init__(
        self,
        config: uvicorn.Config,
        service: CompactionService,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        super().__init__(config)
        self.service = service
        self._clock = clock
        self.last_sweep: Optional[date] = None

    def sweep_due(self, now: datetime) -> bool:
        return (
            now.hour == self.service.config.retention_sweep_hour
            and self.last_sweep != now.date()
        )

    def run_sweep(self, now: datetime) -> int:
        self.last_sweep = now.date()
        return self.sweep()

    def sweep(self) -> int:
        try:
            return self.service.sweep()
        except OSError as e:
            self.service.event_log.error(f"Retention sweep failed: {e}")
            return 0

    async def on_tick(self, counter: int) -> bool:
        if counter % _SWEEP_CHECK_TICKS == 0:
            now = self._clock()
            if self.sweep_due(now):
                await asyncio.to_thread(self.run_sweep, now)
        return await super().on_tick(counter)


class ServiceHost:
    """Runs the service: startup sweep, accept loop, then drains the worker."""

    def __init__(self, service: CompactionService, log_level: str = "info"):
        self.service = service
        config = service.config
        self.server = AcceptLoop(
            uvicorn.Config(
                create_app(service),
                host=config.host,
                port=config.port,
                log_level=log_level,
            ),
            service,
        )

    @property
    def started(self) -> bool:
        return self.server.started

    def request_shutdown(self) -> None:
        self.server.should_exit = True

    def run(self) -> None:
        """Blocks until shutdown. Raises ListenerError if the port cannot be bound."""
        service = self.service
        service.event_log.info(
            f"Service starting on {service.config.host}:{service.config.port}"
        )
        self.server.sweep()

        try:
            self.server.run()
        except SystemExit as e:
            # uvicorn exits the process when it cannot bind.
            service.event_log.error(
                f"Listener could not be started on port {service.config.port}"
            )
            raise ListenerError(
                f"Could not listen on {service.config.host}:{service.config.port}"
            ) from e
        finally:
            service.close(timeout=service.config.shutdown_drain_timeout)
