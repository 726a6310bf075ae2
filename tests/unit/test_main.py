"""
Unit tests for the application wiring.
"""

import tempfile
import unittest

from motiontrack.core.config import ApplicationConfig, StoreConfig
from motiontrack.core.events import EventType
from motiontrack.main import MotionTrackApplication

class TestMotionTrackApplication(unittest.IsolatedAsyncioTestCase):
    """Test cases for MotionTrackApplication."""

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        config = ApplicationConfig(store=StoreConfig(directory=self.tmp.name))
        self.app = MotionTrackApplication(config=config)

    async def asyncTearDown(self):
        await self.app.shutdown()
        self.tmp.cleanup()

    async def test_initialize_and_stop(self):
        """Test the engine service starts, startup is announced and a stop request shuts down."""
        await self.app.initialize()
        service = self.app.engine_service
        self.assertIsNotNone(service)
        self.assertTrue(service.is_running)
        self.assertEqual(len(self.app.event_tracer.get_events_by_type(EventType.APPLICATION_STARTUP_COMPLETED)), 1)
        self.assertEqual(await service.list_sessions(), [])

        self.app.request_stop()
        await self.app.run()
        self.assertFalse(service.is_running)
        self.assertEqual(self.app.services, {})

if __name__ == '__main__':
    unittest.main()
