"""
Application wiring for motiontrack.

Builds the event registry, bus and tracer, the JSON session store and the motion
engine service, then runs until SIGINT/SIGTERM. The sample feed comes from the
embedding application (the sensor SDK bridge) as an async iterable of
(channel, Sample) pairs.
"""

import asyncio
import logging
import signal
import sys
from typing import AsyncIterable, Dict, Optional

import structlog

from motiontrack.core import (ApplicationConfig, BaseService, EventBus, EventRegistry, EventTracer,
                              ServiceRegistry, get_config)
from motiontrack.events.system import ApplicationStartupCompletedEvent, register_system_events
from motiontrack.recording.store import JsonSessionStore
from motiontrack.services.engine_service import FeedItem, MotionEngineService

APP_NAME = "motiontrack"

def setup_logging(level: str = "INFO") -> None:
    """Route structlog through stdlib logging with a console renderer."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", level=getattr(logging, level), stream=sys.stdout)

class MotionTrackApplication:
    """Owns the event system and the services of one motiontrack process."""

    def __init__(self,
                 feed: Optional[AsyncIterable[FeedItem]] = None,
                 config: Optional[ApplicationConfig] = None):
        self.config = config or get_config()
        self.feed = feed
        self.logger = structlog.get_logger(app=APP_NAME)

        self.event_registry = EventRegistry()
        register_system_events(self.event_registry)
        self.service_registry = ServiceRegistry()
        self.event_tracer = (EventTracer(max_events=self.config.event.max_trace_events)
                             if self.config.event.tracing_enabled else None)
        self.event_bus = EventBus(self.event_registry, self.event_tracer)
        self.store = JsonSessionStore(self.config.store.directory, self.config.store.file_prefix)

        self.services: Dict[str, BaseService] = {}
        self._stop_requested = asyncio.Event()

    @property
    def engine_service(self) -> Optional[MotionEngineService]:
        return self.services.get("engine")

    async def initialize(self) -> None:
        """Start the engine service and announce startup on the bus."""
        self.logger.info("Initializing", session_dir=str(self.store.directory))
        service = MotionEngineService(self.event_bus, self.service_registry,
                                      config=self.config, store=self.store, feed=self.feed)
        try:
            await service.start()
        except Exception as e:
            self.logger.error("Engine service failed to start", error=str(e), exc_info=True)
            raise
        self.services["engine"] = service

        startup = ApplicationStartupCompletedEvent(session_directory=str(self.store.directory))
        await self.event_bus.publish(startup, APP_NAME)
        self.logger.info("Startup complete")

    async def run(self) -> None:
        """Block until a stop is requested, then shut down."""
        try:
            await self._stop_requested.wait()
        except asyncio.CancelledError:
            self.logger.info("Application task cancelled")
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Stop the services in reverse start order."""
        if not self.services:
            return
        self.logger.info("Shutting down")
        for name in reversed(list(self.services)):
            service = self.services.pop(name)
            try:
                await service.stop()
            except Exception as e:
                self.logger.error("Error stopping service", service=name, error=str(e))
        self.logger.info("Shutdown complete")

    def request_stop(self, sig: Optional[signal.Signals] = None) -> None:
        if sig is not None:
            self.logger.info("Received signal", signal=sig.name)
        self._stop_requested.set()

async def main(feed: Optional[AsyncIterable[FeedItem]] = None) -> None:
    config = get_config()
    setup_logging(config.log_level.value)
    app = MotionTrackApplication(feed, config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.request_stop, sig)

    await app.initialize()
    await app.run()

if __name__ == "__main__":
    asyncio.run(main())
