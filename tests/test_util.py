import asyncio
import re
import unittest
from datetime import datetime, timezone

from notebook_folders.util import (
    Debouncer,
    datetime_to_timestamp,
    generate_folder_id,
    sanitize_account_id,
)


class TestHelpers(unittest.TestCase):
    def test_sanitize_account_id(self):
        self.assertEqual(sanitize_account_id("jane.doe@example.com"), "jane_doe_example_com")
        self.assertEqual(sanitize_account_id("abc123"), "abc123")

    def test_generate_folder_id(self):
        at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        folder_id = generate_folder_id(at)
        self.assertRegex(
            folder_id, re.compile(rf"^folder_{datetime_to_timestamp(at)}_[0-9a-f]{{8}}$")
        )

    def test_ids_in_same_millisecond_differ(self):
        at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.assertNotEqual(generate_folder_id(at), generate_folder_id(at))


class TestDebouncer(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.calls = 0

    async def _callback(self):
        self.calls += 1

    async def test_burst_collapses_into_one_run(self):
        debouncer = Debouncer(self._callback, 0.01)
        for _ in range(5):
            debouncer.schedule()
        self.assertTrue(debouncer.pending)
        await debouncer.flush()
        self.assertEqual(self.calls, 1)
        self.assertFalse(debouncer.pending)

    async def test_cancel(self):
        debouncer = Debouncer(self._callback, 0.01)
        debouncer.schedule()
        self.assertTrue(debouncer.cancel())
        self.assertFalse(debouncer.cancel())
        await asyncio.sleep(0.03)
        self.assertEqual(self.calls, 0)

    async def test_callback_can_reschedule_itself(self):
        debouncer = None

        async def callback():
            self.calls += 1
            if self.calls == 1:
                debouncer.schedule()

        debouncer = Debouncer(callback, 0.005)
        debouncer.schedule()
        await debouncer.flush()
        self.assertEqual(self.calls, 2)

    async def test_schedule_does_not_interrupt_a_running_callback(self):
        started = asyncio.Event()
        release = asyncio.Event()
        finished = []

        async def callback():
            started.set()
            await release.wait()
            finished.append(True)

        debouncer = Debouncer(callback, 0)
        debouncer.schedule()
        await started.wait()

        self.assertFalse(debouncer.cancel())
        debouncer.schedule()
        self.assertTrue(debouncer.pending)
        release.set()
        await debouncer.flush()

        self.assertEqual(len(finished), 2)
        self.assertFalse(debouncer.pending)

    async def test_callback_errors_are_logged(self):
        async def callback():
            raise ValueError("boom")

        debouncer = Debouncer(callback, 0)
        with self.assertLogs("notebook_folders.util", level="ERROR"):
            debouncer.schedule()
            await debouncer.flush()
        self.assertFalse(debouncer.pending)


if __name__ == "__main__":
    unittest.main(verbosity=2)
