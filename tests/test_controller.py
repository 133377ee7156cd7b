import tempfile
import unittest
from pathlib import Path

from notebook_folders.constants import load_config_file
from notebook_folders.controller import Controller
from notebook_folders.data.models import ViewMode
from notebook_folders.data.storage import MemoryStorage
from notebook_folders.dom import SubtreeChange
from notebook_folders.drag import DRAG_INITIALIZED_MARKER

from .fakes import FakeDom, FakeNotebookElement, HookRecorder, wait_until


class TestConfigFile(unittest.TestCase):
    def test_load_config_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir, "config.toml")
            self.assertEqual(load_config_file(path), {})

            path.write_text("reconcile_delay = 0.25\nserialize_writes = false\n")
            self.assertEqual(
                load_config_file(path),
                {"reconcile_delay": 0.25, "serialize_writes": False},
            )


class TestController(unittest.IsolatedAsyncioTestCase):
    async def test_config_is_applied(self):
        controller = Controller(
            MemoryStorage(),
            FakeDom(),
            config={"serialize_writes": False, "reconcile_delay": 0.2, "reinject_delay": 0.3},
        )
        self.assertFalse(controller.store.serialize_writes)
        self.assertEqual(controller.reconciler.reconcile_debouncer.delay, 0.2)
        self.assertEqual(controller.reconciler.reinject_debouncer.delay, 0.3)

    async def test_without_dom_only_the_store_runs(self):
        storage = MemoryStorage({"nlm_view_pref": "grid"})
        controller = Controller(storage, config={})
        self.assertIsNone(controller.reconciler)

        await controller.start()
        self.assertEqual(controller.view, ViewMode.Grid)
        self.assertFalse(controller.watching)
        await controller.stop()

    async def test_start_reconciles_and_watches(self):
        notebook_element = FakeNotebookElement("nb1")
        dom = FakeDom([notebook_element])
        controller = Controller(
            MemoryStorage(),
            dom,
            config={"reconcile_delay": 0.01, "reinject_delay": 0.01},
        )
        await controller.start()
        try:
            self.assertEqual(notebook_element.get_marker(DRAG_INITIALIZED_MARKER), "true")
            self.assertTrue(controller.watching)

            await wait_until(lambda: controller.feed.subscriber_count == 1)
            late = FakeNotebookElement("nb2")
            dom.notebooks.append(late)
            controller.feed.publish(SubtreeChange(notebooks_added=1))
            await wait_until(lambda: late.get_marker(DRAG_INITIALIZED_MARKER) == "true")
        finally:
            await controller.stop()

        self.assertFalse(controller.watching)
        self.assertEqual(controller.feed.subscriber_count, 0)

    async def test_account_switch(self):
        storage = MemoryStorage()
        controller = Controller(storage, FakeDom(), config={})
        await controller.store.create({"name": "Shared"})

        self.assertTrue(await controller.set_account("alice@example.com"))
        self.assertFalse(await controller.set_account("alice@example.com"))
        self.assertEqual(controller.account, "alice@example.com")
        self.assertEqual(await controller.store.get_all(), [])

    async def test_account_switch_rebuilds_folders(self):
        hook = HookRecorder()
        controller = Controller(
            MemoryStorage(), FakeDom(), on_folders_changed=hook, config={}
        )
        self.assertTrue(await controller.set_account("bob"))
        self.assertEqual(hook.calls, 1)

        self.assertFalse(await controller.set_account("bob"))
        self.assertEqual(hook.calls, 1)

        self.assertTrue(await controller.set_account(None))
        self.assertEqual(hook.calls, 2)

    async def test_set_view_persists(self):
        storage = MemoryStorage()
        controller = Controller(storage, config={})
        await controller.set_view(ViewMode.Grid)
        self.assertEqual(controller.view, ViewMode.Grid)
        self.assertEqual(storage.data["nlm_view_pref"], "grid")


if __name__ == "__main__":
    unittest.main(verbosity=2)
