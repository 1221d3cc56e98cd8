"""
Tests for the build context and scoped logger.
"""

import logging
import threading
import unittest
from pathlib import Path

from ..config import BuildConfig
from ..context import BuildContext, BuildLogger, LOGGER_NAME, WatchEvent


class TestBuildLogger(unittest.TestCase):
    """Test cases for BuildLogger."""

    def test_error_counts_and_never_raises(self):
        logger = BuildLogger("sprite")
        with self.assertLogs(LOGGER_NAME, level="ERROR") as logs:
            logger.error("bad strip")
            logger.error("bad document")

        self.assertEqual(logger.error_count, 2)
        self.assertIn("[sprite] bad strip", logs.output[0])

    def test_warnings_do_not_count(self):
        logger = BuildLogger()
        with self.assertLogs(LOGGER_NAME, level="WARNING"):
            logger.warn("careful")
        self.assertEqual(logger.error_count, 0)

    def test_push_and_pop_scopes(self):
        logger = BuildLogger("sprite")
        with self.assertLogs(LOGGER_NAME, level="INFO") as logs:
            logger.push("units")
            logger.log("inner")
            logger.pop()
            logger.log("outer")

        self.assertIn("[units] inner", logs.output[0])
        self.assertIn("[sprite] outer", logs.output[1])

    def test_children_share_counter(self):
        root = BuildLogger()
        child = root.child("sprite")
        grandchild = child.child("units")

        with self.assertLogs(LOGGER_NAME, level="ERROR") as logs:
            grandchild.error("failed")

        self.assertEqual(root.error_count, 1)
        self.assertIn("[sprite/units] failed", logs.output[0])

    def test_counter_is_thread_safe(self):
        logger = BuildLogger(logger=logging.getLogger(f"{LOGGER_NAME}.silent"))
        logger.logger.disabled = True

        def report():
            for _ in range(100):
                logger.error("x")

        threads = [threading.Thread(target=report) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(logger.error_count, 800)


class TestBuildContext(unittest.TestCase):

    def test_from_config(self):
        config = BuildConfig(game_root="/tmp/game", production=True)
        ctx = BuildContext.from_config(config, watch=True)

        self.assertEqual(ctx.asset_root, Path("/tmp/game/assets").resolve())
        self.assertTrue(ctx.production)
        self.assertTrue(ctx.watch)
        self.assertEqual(ctx.compression_level, 9)

    def test_for_plugin_scopes_logger(self):
        events = []
        ctx = BuildContext(Path("a"), Path("b"), Path("c"), emit=events.append)
        plugin_ctx = ctx.for_plugin("sprite")

        plugin_ctx.emit({"type": "sheet_updated"})
        self.assertEqual(events, [{"type": "sheet_updated"}])
        self.assertIs(plugin_ctx.logger.counter, ctx.logger.counter)
        self.assertIsNot(plugin_ctx.logger, ctx.logger)


class TestWatchEvent(unittest.TestCase):

    def test_invalid_type(self):
        with self.assertRaises(ValueError):
            WatchEvent("rename", "/tmp/x")


if __name__ == '__main__':
    unittest.main()
