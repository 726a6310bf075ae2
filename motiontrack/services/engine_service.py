"""
This service runs the motion engine and publishes its state on the event bus.

Every inbound event (samples from the feed, clock ticks, commands, persistence
results) goes through one ordered asyncio.Queue and is applied by a single consumer
task, so the engine never sees two events at once. Blocking session persistence runs
in a worker thread and its result comes back through the same queue.

Feed timestamps are rebased onto the service clock on arrival, so samples, clock
ticks and commands all reach the engine on one time base.
"""

import asyncio
import dataclasses
import time
from math import isfinite
from enum import Enum
from typing import Any, AsyncIterable, Callable, List, Optional, Set, Tuple

from motiontrack.core.config import ApplicationConfig, EngineConfig
from motiontrack.core.events import BaseEvent, EventType
from motiontrack.core.service import BaseService
from motiontrack.engine import (CalibrationFailed, EngineSnapshot, MotionEngine, PersistFailed,
                                PhaseChanged, SessionFinalized)
from motiontrack.events.engine import (CalibrationFailedEvent, CaptureCommand, CaptureCommandEvent,
                                       EngineSnapshotEvent, FeedDisconnectedEvent,
                                       RecordingPhaseChangedEvent, SessionCompletedEvent,
                                       SessionPersistFailedEvent)
from motiontrack.motion.models import Sample
from motiontrack.recording.session import Session
from motiontrack.recording.store import SessionStore, SessionStoreError

class Channel(str, Enum):
    """Sample channels carried by a feed."""
    ACCELERATION = "acceleration"
    ANGULAR_RATE = "angular_rate"

FeedItem = Tuple[Channel, Sample]

class MotionEngineService(BaseService):
    """Service owning the MotionEngine and its event queue"""

    PRODUCES_EVENTS = {
        EventType.ENGINE_SNAPSHOT: {
            'schema': EngineSnapshotEvent,
            'description': "Latest engine state",
        },
        EventType.RECORDING_PHASE_CHANGED: {
            'schema': RecordingPhaseChangedEvent,
            'description': "Recording phase transition",
        },
        EventType.SESSION_COMPLETED: {
            'schema': SessionCompletedEvent,
            'description': "A motion burst was finalized into a session",
        },
        EventType.SESSION_PERSIST_FAILED: {
            'schema': SessionPersistFailedEvent,
            'description': "A session could not be stored",
        },
        EventType.CALIBRATION_FAILED: {
            'schema': CalibrationFailedEvent,
            'description': "Calibration failed after retry",
        },
        EventType.FEED_DISCONNECTED: {
            'schema': FeedDisconnectedEvent,
            'description': "The sample feed ended",
        },
    }

    CONSUMES_EVENTS = {
        EventType.CAPTURE_COMMAND: 'handle_event',
    }

    def __init__(self,
                 event_bus,
                 service_registry,
                 name: Optional[str] = None,
                 config: Optional[ApplicationConfig] = None,
                 store: Optional[SessionStore] = None,
                 feed: Optional[AsyncIterable[FeedItem]] = None,
                 clock: Callable[[], float] = time.monotonic):
        super().__init__(event_bus, service_registry, name, config or ApplicationConfig())
        event_bus.registry.register_event(EventType.CAPTURE_COMMAND, CaptureCommandEvent,
                                          "Capture cycle command")
        self.store = store
        self.feed = feed
        self.clock = clock
        self.service_config = self.config.service

        self.engine = MotionEngine(self.config.engine,
                                   persister=self._dispatch_persist if store is not None else None)
        self.engine.add_observer(self._on_snapshot)
        self.engine.add_listener(self._on_notice)

        self.queue: Optional[asyncio.Queue] = None
        self.consumer_task: Optional[asyncio.Task] = None
        self.tick_task: Optional[asyncio.Task] = None
        self.feed_task: Optional[asyncio.Task] = None
        self._persist_tasks: Set[asyncio.Task] = set()

        self.latest_snapshot: Optional[EngineSnapshot] = None
        self._outbox: List[BaseEvent] = []
        self._force_snapshot = False
        self._last_published_at: Optional[float] = None
        self._clock_offset: Optional[float] = None

    async def start(self):
        """Start the service and its queue tasks"""
        await super().start()
        self.queue = asyncio.Queue(maxsize=self.service_config.queue_maxsize)
        self.consumer_task = asyncio.create_task(self._consume_loop())
        self.tick_task = asyncio.create_task(self._tick_loop())
        if self.feed is not None:
            self.attach_feed(self.feed)
        self.logger.info("Motion engine service started",
                         tick_interval=self.service_config.tick_interval)

    async def stop(self):
        """Stop the service"""
        tasks = [t for t in (self.feed_task, self.tick_task, self.consumer_task) if t]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks, timeout=self.service_config.service_shutdown_timeout)
        if self._persist_tasks:
            await asyncio.wait(list(self._persist_tasks),
                               timeout=self.service_config.service_shutdown_timeout)
        self.feed_task = self.tick_task = self.consumer_task = None
        await super().stop()

    def attach_feed(self, feed: AsyncIterable[FeedItem]) -> asyncio.Task:
        """Start draining a sample feed onto the event queue."""
        if self.feed_task and not self.feed_task.done():
            self.feed_task.cancel()
        self.feed = feed
        self.feed_task = asyncio.create_task(self._feed_loop(feed))
        return self.feed_task

    async def submit_sample(self, channel: Channel, sample: Sample) -> None:
        await self.queue.put(("sample", Channel(channel), self._rebase(sample)))

    def _rebase(self, sample: Sample) -> Sample:
        """
        Move a feed timestamp onto the service clock.

        The offset is taken from the first sample and kept while the rebased
        timestamps stay within max_clock_skew of the clock. A larger drift (device
        clock reset, new feed on another time base) re-anchors it.
        """
        if not isfinite(sample.timestamp):
            return sample
        now = self.clock()
        if self._clock_offset is not None:
            rebased = sample.timestamp + self._clock_offset
            if abs(now - rebased) <= self.service_config.max_clock_skew:
                return dataclasses.replace(sample, timestamp=rebased)
            self.logger.info("Re-anchoring feed clock", skew=round(now - rebased, 3))
        self._clock_offset = now - sample.timestamp
        return dataclasses.replace(sample, timestamp=now)

    # Public commands

    async def start_capture(self, config: Optional[EngineConfig] = None) -> bool:
        return await self._call(lambda: self.engine.start(self.clock(), config))

    async def stop_capture(self) -> Optional[Session]:
        return await self._call(lambda: self.engine.stop(self.clock()))

    async def force_stop_active_capture(self) -> Optional[Session]:
        return await self._call(lambda: self.engine.force_stop_active_capture(self.clock()))

    async def set_motion_threshold(self, value: float) -> None:
        await self._call(lambda: self.engine.set_motion_threshold(value))

    async def apply_threshold_preset(self, preset: str) -> None:
        await self._call(lambda: self.engine.apply_threshold_preset(preset))

    async def set_motion_end_delay(self, seconds: float) -> None:
        await self._call(lambda: self.engine.set_motion_end_delay(seconds))

    async def retry_persist(self) -> int:
        return await self._call(self.engine.retry_persist)

    async def list_sessions(self) -> List[str]:
        if self.store is None:
            return []
        return await asyncio.to_thread(self.store.list_sessions)

    async def load_session(self, session_id: str) -> Session:
        if self.store is None:
            raise SessionStoreError(f"No session store configured, cannot load {session_id}")
        return await asyncio.to_thread(self.store.load, session_id)

    async def drain(self) -> None:
        """Wait until the queue is empty and no persistence is in flight."""
        while True:
            await self.queue.join()
            if not self._persist_tasks:
                return
            await asyncio.wait(list(self._persist_tasks))

    async def handle_event(self, event: BaseEvent) -> None:
        """
        Map capture command events onto the engine commands.

        Commands are queued without waiting for their result, so a handler running
        inside an event delivery can never block the consumer that is delivering it.
        """
        if EventType(event.type) != EventType.CAPTURE_COMMAND:
            return
        command = CaptureCommand(event.command)
        value = event.value
        actions = {
            CaptureCommand.START: lambda: self.engine.start(self.clock()),
            CaptureCommand.STOP: lambda: self.engine.stop(self.clock()),
            CaptureCommand.FORCE_STOP: lambda: self.engine.force_stop_active_capture(self.clock()),
            CaptureCommand.SET_MOTION_THRESHOLD: lambda: self.engine.set_motion_threshold(value),
            CaptureCommand.SET_MOTION_END_DELAY: lambda: self.engine.set_motion_end_delay(value),
            CaptureCommand.APPLY_THRESHOLD_PRESET: lambda: self.engine.apply_threshold_preset(event.preset),
            CaptureCommand.RETRY_PERSIST: self.engine.retry_persist,
        }
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(lambda f: self._command_done(command, f))
        await self.queue.put(("call", actions[command], future))

    def _command_done(self, command: CaptureCommand, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.logger.warning("Rejected capture command", command=command.value, error=str(error))

    # Queue plumbing

    async def _call(self, fn: Callable[[], Any]) -> Any:
        future = asyncio.get_running_loop().create_future()
        await self.queue.put(("call", fn, future))
        return await future

    async def _consume_loop(self):
        """Single consumer: apply queued events to the engine one at a time"""
        try:
            while True:
                item = await self.queue.get()
                try:
                    self._apply(item)
                    await self._flush()
                except Exception as e:
                    await self.report_error(e, kind=item[0])
                finally:
                    self.queue.task_done()
        except asyncio.CancelledError:
            raise

    def _apply(self, item: Tuple) -> None:
        kind = item[0]
        if kind == "sample":
            _, channel, sample = item
            if channel == Channel.ACCELERATION:
                self.engine.on_acceleration(sample)
            else:
                self.engine.on_angular_rate(sample)
        elif kind == "tick":
            self.engine.tick(item[1])
        elif kind == "call":
            _, fn, future = item
            try:
                result = fn()
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
        elif kind == "persisted":
            _, session_id, error = item
            self.engine.persist_completed(session_id, error)
        elif kind == "disconnect":
            _, now, reason = item
            self.engine.feed_disconnected(now)
            self._outbox.append(FeedDisconnectedEvent(reason=reason))

    async def _flush(self) -> None:
        outbox, self._outbox = self._outbox, []
        for event in outbox:
            await self.publish(event)

        snapshot = self.latest_snapshot
        if snapshot is None:
            return
        now = self.clock()
        due = (self._last_published_at is None or
               now - self._last_published_at >= self.service_config.snapshot_interval)
        if self._force_snapshot or due:
            self._force_snapshot = False
            self._last_published_at = now
            await self.publish(EngineSnapshotEvent.from_snapshot(snapshot))

    async def _tick_loop(self):
        """Enqueue a clock tick every tick_interval seconds"""
        try:
            while True:
                await asyncio.sleep(self.service_config.tick_interval)
                await self.queue.put(("tick", self.clock()))
        except asyncio.CancelledError:
            raise

    async def _feed_loop(self, feed: AsyncIterable[FeedItem]):
        """Drain the sample feed; a disconnect event follows when it ends or fails"""
        reason = None
        try:
            async for channel, sample in feed:
                await self.queue.put(("sample", Channel(channel), self._rebase(sample)))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = str(e)
            self.logger.error("Sample feed failed", error=reason)
        self.logger.info("Sample feed ended")
        await self.queue.put(("disconnect", self.clock(), reason))

    # Engine callbacks (run inside the consumer task)

    def _on_snapshot(self, snapshot: EngineSnapshot) -> None:
        self.latest_snapshot = snapshot

    def _on_notice(self, notice) -> None:
        if isinstance(notice, PhaseChanged):
            self._force_snapshot = True
            self._outbox.append(RecordingPhaseChangedEvent(
                phase=notice.phase.value,
                previous_phase=notice.previous.value,
                engine_time=notice.timestamp,
            ))
        elif isinstance(notice, SessionFinalized):
            session = notice.session
            self._outbox.append(SessionCompletedEvent(
                session_id=session.id,
                duration=session.duration,
                sample_count=session.sample_count,
                summary=session.summary,
            ))
        elif isinstance(notice, PersistFailed):
            self._outbox.append(SessionPersistFailedEvent(
                session_id=notice.session_id,
                error_message=notice.error,
            ))
        elif isinstance(notice, CalibrationFailed):
            self._outbox.append(CalibrationFailedEvent(
                error_message=notice.error,
                attempts=notice.attempts,
            ))

    def _dispatch_persist(self, session: Session) -> None:
        task = asyncio.create_task(self._persist(session))
        self._persist_tasks.add(task)
        task.add_done_callback(self._persist_tasks.discard)

    async def _persist(self, session: Session) -> None:
        error = None
        try:
            await asyncio.to_thread(self.store.save, session)
        except Exception as e:
            error = e
        await self.queue.put(("persisted", session.id, error))
