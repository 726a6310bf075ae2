"""
Unit tests for the MotionEngineService.

The service is driven with synthetic samples and a manual clock that the tests move
along with the samples they submit, so the runs stay deterministic.
"""

import asyncio
import unittest

from motiontrack.core.bus import EventBus
from motiontrack.core.config import ApplicationConfig, EngineConfig, IntegratorConfig
from motiontrack.core.events import EventType
from motiontrack.core.registry import EventRegistry, ServiceRegistry
from motiontrack.core.tracing import EventTracer
from motiontrack.events.engine import CaptureCommand, CaptureCommandEvent
from motiontrack.motion.models import RecordingPhase, Sample
from motiontrack.motion.units import STANDARD_GRAVITY, SpeedUnit
from motiontrack.recording.store import InMemorySessionStore
from motiontrack.services.engine_service import Channel, MotionEngineService

STEP = 2.0 / STANDARD_GRAVITY
EPOCH = 1.7e9  # device timestamps in seconds since 1970

class ManualClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

class ReadOnlyStore(InMemorySessionStore):
    """Store whose writes fail with a plain OSError, as an unwrapped filesystem error would."""

    def save(self, session):
        raise PermissionError("read-only mount")

def stream(start, end, x=0.0):
    return [Sample.of(i / 100.0, x, 0.0, 1.0) for i in range(int(round(start * 100)), int(round(end * 100)))]

def throw_scenario():
    return stream(0.0, 3.0) + stream(3.0, 3.5, x=STEP) + stream(3.5, 6.5)

async def feed_of(samples, clock):
    for sample in samples:
        clock.now = sample.timestamp
        yield Channel.ACCELERATION, sample

class TestMotionEngineService(unittest.IsolatedAsyncioTestCase):
    """Test cases for the MotionEngineService class."""

    async def asyncSetUp(self):
        self.registry = EventRegistry()
        self.tracer = EventTracer(max_events=5000)
        self.bus = EventBus(self.registry, self.tracer)
        self.store = InMemorySessionStore()
        self.clock = ManualClock()
        self.service = await self.start_service(self.store)

    async def start_service(self, store):
        config = ApplicationConfig(engine=EngineConfig(integrator=IntegratorConfig(display_unit=SpeedUnit.MPS)))
        service = MotionEngineService(self.bus, ServiceRegistry(), config=config,
                                      store=store, clock=self.clock)
        await service.start()
        return service

    async def asyncTearDown(self):
        if self.service.is_running:
            await self.service.stop()

    async def submit(self, samples):
        for sample in samples:
            self.clock.now = sample.timestamp
            await self.service.submit_sample(Channel.ACCELERATION, sample)
        await self.service.drain()

    def events(self, event_type):
        return self.tracer.get_events_by_type(event_type)

    async def test_full_cycle_through_feed(self):
        """Test a throw is captured, stored and published, then the feed disconnects."""
        self.assertTrue(await self.service.start_capture())
        await self.submit(throw_scenario())

        task = self.service.attach_feed(feed_of(stream(6.5, 8.0), self.clock))
        await task
        await self.service.drain()

        self.assertEqual(self.service.engine.phase, RecordingPhase.IDLE)
        self.assertEqual(self.tracer.get_phase_timeline(),
                         ["calibrating", "monitoring", "logging", "processing", "ready", "idle"])

        completed = self.events(EventType.SESSION_COMPLETED)
        self.assertEqual(len(completed), 1)
        session_id = completed[0]['event_data']['session_id']
        self.assertEqual(await self.service.list_sessions(), [session_id])
        session = await self.service.load_session(session_id)
        self.assertGreater(session.sample_count, 0)
        self.assertGreater(session.summary.max_speed, 0.2)

        self.assertEqual(len(self.events(EventType.FEED_DISCONNECTED)), 1)
        snapshots = self.events(EventType.ENGINE_SNAPSHOT)
        self.assertTrue(snapshots)
        self.assertEqual(snapshots[-1]['event_data']['phase'], "idle")
        self.assertEqual(snapshots[-1]['event_data']['speed_unit'], "m/s")

    async def test_capture_commands_over_the_bus(self):
        """Test CaptureCommandEvents drive the engine and bad values are rejected."""
        await self.bus.publish(CaptureCommandEvent(command=CaptureCommand.START), "test")
        await self.service.drain()
        self.assertEqual(self.service.engine.phase, RecordingPhase.CALIBRATING)

        await self.bus.publish(CaptureCommandEvent(command=CaptureCommand.SET_MOTION_THRESHOLD, value=0.5), "test")
        await self.service.drain()
        self.assertAlmostEqual(self.service.engine.detector.start_margin, 0.5)

        await self.bus.publish(CaptureCommandEvent(command=CaptureCommand.SET_MOTION_THRESHOLD, value=-1.0), "test")
        await self.service.drain()
        self.assertAlmostEqual(self.service.engine.detector.start_margin, 0.5)

        await self.bus.publish(CaptureCommandEvent(command=CaptureCommand.STOP), "test")
        await self.service.drain()
        self.assertEqual(self.service.engine.phase, RecordingPhase.IDLE)

    async def test_direct_commands(self):
        """Test the awaitable command API."""
        self.assertTrue(await self.service.start_capture())
        self.assertFalse(await self.service.start_capture())
        with self.assertRaises(ValueError):
            await self.service.set_motion_end_delay(-1.0)
        await self.service.set_motion_end_delay(0.5)
        self.assertEqual(self.service.engine.orchestrator.motion_end_delay, 0.5)
        self.assertIsNone(await self.service.stop_capture())
        self.assertEqual(self.service.engine.phase, RecordingPhase.IDLE)

    async def test_persist_failure_and_retry(self):
        """Test a failed save is published, kept in memory and stored on retry."""
        self.store.fail_next = OSError("disk full")
        await self.service.start_capture()
        await self.submit(stream(0.0, 3.0) + stream(3.0, 3.6, x=STEP))
        session = await self.service.force_stop_active_capture()
        await self.service.drain()

        self.assertIsNotNone(session)
        self.assertEqual(self.service.engine.phase, RecordingPhase.READY)
        failed = self.events(EventType.SESSION_PERSIST_FAILED)
        self.assertEqual(len(failed), 1)
        self.assertIn("disk full", failed[0]['event_data']['error_message'])
        self.assertEqual(await self.service.list_sessions(), [])

        self.assertEqual(await self.service.retry_persist(), 1)
        await self.service.drain()
        self.assertEqual(await self.service.list_sessions(), [session.id])
        self.assertEqual(self.service.engine.pending_sessions, {})
        self.assertEqual(len(self.events(EventType.SESSION_COMPLETED)), 1)

    async def test_failing_feed_disconnects(self):
        """Test a feed that raises is treated as a disconnect."""
        async def broken_feed():
            yield Channel.ACCELERATION, Sample.of(0.0, 0.0, 0.0, 1.0)
            raise ConnectionError("sensor unplugged")

        await self.service.start_capture()
        await self.service.attach_feed(broken_feed())
        await self.service.drain()

        events = self.events(EventType.FEED_DISCONNECTED)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]['event_data']['reason'], "sensor unplugged")
        self.assertEqual(self.service.engine.phase, RecordingPhase.IDLE)

    async def test_feed_on_another_time_base(self):
        """Test device timestamps far ahead of the service clock still give a full cycle."""
        self.clock.now = 1000.0
        self.assertTrue(await self.service.start_capture())
        for sample in throw_scenario():
            self.clock.now = 1000.0 + sample.timestamp
            await self.service.submit_sample(Channel.ACCELERATION,
                                             Sample(EPOCH + sample.timestamp, sample.vector))
        await self.service.drain()

        self.assertEqual(self.tracer.get_phase_timeline(),
                         ["calibrating", "monitoring", "logging", "processing", "ready", "idle"])
        self.assertEqual(len(await self.service.list_sessions()), 1)
        self.assertLess(abs(self.service.engine.now - 1000.0 - 6.49), 1e-3)

    async def test_feed_behind_the_clock_keeps_settle_delay(self):
        """Test a feed stamped behind the service clock does not cut the motion end delay short."""
        self.clock.now = 1000.0
        await self.service.start_capture()
        await self.service.set_motion_end_delay(2.0)
        samples = (stream(0.0, 3.0) + stream(3.0, 3.5, x=STEP) + stream(3.5, 4.8) +
                   stream(4.8, 5.3, x=STEP) + stream(5.3, 10.0))
        for sample in samples:
            self.clock.now = 1000.0 + sample.timestamp
            await self.service.submit_sample(Channel.ACCELERATION, sample)
            if int(round(sample.timestamp * 100)) % 5 == 0:
                await self.service.queue.put(("tick", self.clock.now))
        await self.service.drain()

        completed = self.events(EventType.SESSION_COMPLETED)
        self.assertEqual(len(completed), 1)
        self.assertEqual(completed[0]['event_data']['summary']['motion_event_count'], 2)

    async def test_clock_reanchors_after_timestamp_jump(self):
        """Test a device clock reset re-anchors the rebasing offset."""
        self.clock.now = 50.0
        self.assertEqual(self.service._rebase(Sample.of(EPOCH, 0.0, 0.0, 1.0)).timestamp, 50.0)
        self.clock.now = 50.5
        self.assertAlmostEqual(self.service._rebase(Sample.of(EPOCH + 0.5, 0.0, 0.0, 1.0)).timestamp, 50.5)
        self.clock.now = 51.0
        self.assertEqual(self.service._rebase(Sample.of(3.0, 0.0, 0.0, 1.0)).timestamp, 51.0)
        self.clock.now = 51.25
        self.assertAlmostEqual(self.service._rebase(Sample.of(3.25, 0.0, 0.0, 1.0)).timestamp, 51.25)

    async def test_unwrapped_store_error_still_reaches_ready(self):
        """Test a store raising a plain OSError is reported and the cycle moves on."""
        await self.service.stop()
        self.service = await self.start_service(ReadOnlyStore())
        await self.service.start_capture()
        await self.submit(stream(0.0, 3.0) + stream(3.0, 3.6, x=STEP))
        session = await self.service.force_stop_active_capture()
        await self.service.drain()

        self.assertEqual(self.service.engine.phase, RecordingPhase.READY)
        failed = self.events(EventType.SESSION_PERSIST_FAILED)
        self.assertEqual(len(failed), 1)
        self.assertIn("read-only mount", failed[0]['event_data']['error_message'])
        self.assertIn(session.id, self.service.engine.pending_sessions)

    async def test_threshold_preset_command(self):
        """Test sensitivity presets are reachable over the bus and through the service."""
        await self.bus.publish(CaptureCommandEvent(command=CaptureCommand.APPLY_THRESHOLD_PRESET,
                                                   preset="relaxed"), "test")
        await self.service.drain()
        self.assertAlmostEqual(self.service.engine.detector.start_margin, 0.10 * STANDARD_GRAVITY)

        await self.service.apply_threshold_preset("sensitive")
        self.assertAlmostEqual(self.service.engine.detector.start_margin, 0.02 * STANDARD_GRAVITY)
        with self.assertRaises(ValueError):
            await self.service.apply_threshold_preset("extreme")

    async def test_stop_cancels_tasks(self):
        await self.service.stop()
        self.assertFalse(self.service.is_running)
        self.assertIsNone(self.service.consumer_task)
        await asyncio.sleep(0)

if __name__ == '__main__':
    unittest.main()
