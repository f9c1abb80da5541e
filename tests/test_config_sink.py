"""Tests for settings persistence and time sinks.

Covers: tt.core.config, tt.core.sink, tt.util.misc
"""

import json
import shutil
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import patch


# ──────────────────────────────────────────────────────────────────────────
# config.py tests
# ──────────────────────────────────────────────────────────────────────────

class TestSettings(unittest.TestCase):
    """Tests for loading and saving tracker settings."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self._tmppath = Path(self.tmpdir)
        self.path = self._tmppath / "project.json"

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_missing_file_gives_defaults(self):
        from tt.core.config import TrackerSettings, load_settings
        settings = load_settings(self.path)
        self.assertEqual(settings, TrackerSettings())
        self.assertEqual(settings.idle_threshold_ms, 120_000)
        self.assertTrue(settings.pause_other_tracker_instances)

    def test_save_and_load_roundtrip(self):
        from tt.core.config import TrackerSettings, load_settings, save_settings
        settings = TrackerSettings(total_time_seconds=999, git_integration=True, ide_time_pattern="{{m}}")
        save_settings(settings, self.path)
        self.assertEqual(load_settings(self.path), settings)

        with open(self.path, "r", encoding="utf-8") as f:
            document = json.load(f)
        self.assertEqual(document["meta"]["schema_version"], 1)
        self.assertEqual(document["settings"]["total_time_seconds"], 999)

    def test_missing_and_mistyped_values_are_defaulted(self):
        """Bad values fall back one by one, the rest is kept."""
        from tt.core.config import load_settings
        with open(self.path, "w") as f:
            json.dump({
                "meta": {"schema_version": 1},
                "settings": {
                    "total_time_seconds": 77,
                    "auto_start": 1,
                    "idle_threshold_ms": "soon",
                    "ide_time_pattern": "{{h}}",
                },
            }, f)

        with self.assertLogs("timetracker", level="WARNING") as logs:
            settings = load_settings(self.path)
        self.assertEqual(settings.total_time_seconds, 77)
        self.assertEqual(settings.ide_time_pattern, "{{h}}")
        self.assertTrue(settings.auto_start)
        self.assertEqual(settings.idle_threshold_ms, 120_000)
        self.assertIn("idle_threshold_ms", logs.output[-1])
        self.assertIn("auto_start", logs.output[-1])

    def test_corrupted_file_gives_fallback(self):
        from tt.core.config import TrackerSettings, load_settings
        with open(self.path, "w") as f:
            f.write("{invalid json!!")
        fallback = TrackerSettings(idle_threshold_ms=5)
        with self.assertLogs("timetracker", level="WARNING"):
            settings = load_settings(self.path, fallback=fallback)
        self.assertEqual(settings, fallback)
        self.assertIsNot(settings, fallback)

    def test_non_object_document_gives_fallback(self):
        from tt.core.config import TrackerSettings, load_settings
        with open(self.path, "w") as f:
            json.dump([1, 2, 3], f)
        with self.assertLogs("timetracker", level="WARNING"):
            self.assertEqual(load_settings(self.path), TrackerSettings())

    def test_with_defaults_from_keeps_counted_time(self):
        from tt.core.config import TrackerSettings
        mine = TrackerSettings(total_time_seconds=500, auto_start=True)
        template = TrackerSettings(total_time_seconds=1, auto_start=False, git_time_pattern="{{s}}")
        merged = mine.with_defaults_from(template)
        self.assertEqual(merged.total_time_seconds, 500)
        self.assertFalse(merged.auto_start)
        self.assertEqual(merged.git_time_pattern, "{{s}}")

    def test_project_settings_start_from_defaults(self):
        """A project without its own file gets the stored defaults, minus counted time."""
        from tt.common.setup import ProjectPaths
        from tt.core import config
        paths = ProjectPaths(data=self._tmppath, logs=self._tmppath / "logs", projects=self._tmppath / "projects")
        with patch.object(config, "PATHS", paths):
            config.save_defaults(config.TrackerSettings(total_time_seconds=50, idle_threshold_ms=1234))
            fresh = config.load_project_settings("my project")
            self.assertEqual(fresh.idle_threshold_ms, 1234)
            self.assertEqual(fresh.total_time_seconds, 0)

            fresh.total_time_seconds = 42
            config.save_project_settings("my project", fresh)
            self.assertTrue(paths.project_file("my project").exists())
            self.assertEqual(config.load_project_settings("my project").total_time_seconds, 42)


# ──────────────────────────────────────────────────────────────────────────
# sink.py tests
# ──────────────────────────────────────────────────────────────────────────

class TestGitTimeFileSink(unittest.TestCase):
    """Tests for the commit-time file kept in the git directory."""

    PATTERN = 'Took {{lm "minute"s}} {{ts "second"s}}'

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.git_dir = Path(self.tmpdir) / ".git"
        self.git_dir.mkdir()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def read_lines(self, sink):
        with open(sink.time_file, "r", encoding="utf-8") as f:
            return f.read().splitlines()

    def test_apply_writes_three_lines(self):
        from tt.core.pattern import TimePattern
        from tt.core.sink import GitTimeFileSink
        sink = GitTimeFileSink(self.git_dir)
        sink.apply(90, TimePattern.parse(self.PATTERN))
        self.assertEqual(self.read_lines(sink), ["90", "Took 1 minute", "Took 0 seconds"])

    def test_apply_accumulates_and_clamps(self):
        from tt.core.pattern import TimePattern
        from tt.core.sink import GitTimeFileSink
        pattern = TimePattern.parse(self.PATTERN)
        sink = GitTimeFileSink(self.git_dir)
        sink.apply(30, pattern)
        sink.apply(15, pattern)
        self.assertEqual(sink.read_seconds(), 45)
        sink.apply(-100, pattern)
        self.assertEqual(sink.read_seconds(), 0)

    def test_reset_writes_zero(self):
        from tt.core.pattern import TimePattern
        from tt.core.sink import GitTimeFileSink
        pattern = TimePattern.parse(self.PATTERN)
        sink = GitTimeFileSink(self.git_dir)
        sink.apply(500, pattern)
        sink.reset(pattern)
        self.assertEqual(self.read_lines(sink)[0], "0")

    def test_garbage_file_counts_as_zero(self):
        from tt.core.pattern import TimePattern
        from tt.core.sink import GitTimeFileSink
        sink = GitTimeFileSink(self.git_dir)
        sink.time_file.write_text("not a number\n", encoding="utf-8")
        with self.assertLogs("timetracker.sink", level="WARNING"):
            sink.apply(5, TimePattern.parse(self.PATTERN))
        self.assertEqual(sink.read_seconds(), 5)

    def test_undecodable_file_counts_as_zero(self):
        """Bytes that aren't utf-8 are treated like garbage and the file gets rewritten."""
        from tt.core.pattern import TimePattern
        from tt.core.sink import GitTimeFileSink
        sink = GitTimeFileSink(self.git_dir)
        sink.time_file.write_bytes(b"\xff\xfe12\n")
        with self.assertLogs("timetracker.sink", level="WARNING"):
            sink.apply(5, TimePattern.parse("{{s}}"))
        self.assertEqual(sink.read_seconds(), 5)
        self.assertEqual(self.read_lines(sink), ["5", "5s", "0s"])

    def test_missing_git_dir_is_noop(self):
        from tt.core.pattern import TimePattern
        from tt.core.sink import GitTimeFileSink
        sink = GitTimeFileSink(Path(self.tmpdir) / "nowhere")
        sink.apply(5, TimePattern.parse(self.PATTERN))
        sink.reset(TimePattern.parse(self.PATTERN))
        self.assertFalse(sink.time_file.exists())


class TestAsyncSink(unittest.TestCase):
    """Tests for dispatching sink calls to a worker thread."""

    def test_calls_run_in_order(self):
        from tt.core.pattern import TimePattern
        from tt.core.sink import AsyncSink, TimeSink

        class Recorder(TimeSink):
            def __init__(self):
                self.calls = []
            def apply(self, delta_seconds, pattern):
                self.calls.append(delta_seconds)
            def reset(self, pattern):
                self.calls.append("reset")

        inner = Recorder()
        sink = AsyncSink(inner)
        pattern = TimePattern.parse("{{s}}")
        for delta in (1, 2, 3):
            sink.apply(delta, pattern)
        sink.reset(pattern)
        sink.shutdown(wait=True)
        self.assertEqual(inner.calls, [1, 2, 3, "reset"])

    def test_failures_are_logged(self):
        from tt.core.pattern import TimePattern
        from tt.core.sink import AsyncSink, TimeSink

        class Broken(TimeSink):
            def apply(self, delta_seconds, pattern):
                raise OSError("read-only file system")

        sink = AsyncSink(Broken())
        with self.assertLogs("timetracker.sink", level="ERROR") as logs:
            sink.apply(1, TimePattern.parse("{{s}}"))
            sink.shutdown(wait=True)
        self.assertIn("Time sink update failed", logs.output[0])

    def test_null_sink_accepts_everything(self):
        from tt.core.pattern import TimePattern
        from tt.core.sink import NullSink
        sink = NullSink()
        sink.apply(10, TimePattern.parse("{{s}}"))
        sink.reset(TimePattern.parse("{{s}}"))


# ──────────────────────────────────────────────────────────────────────────
# misc.py tests
# ──────────────────────────────────────────────────────────────────────────

class TestMisc(unittest.TestCase):

    def test_ms_to_s_rounds_halves_away_from_zero(self):
        from tt.util.misc import ms_to_s
        self.assertEqual(ms_to_s(0), 0)
        self.assertEqual(ms_to_s(1499), 1)
        self.assertEqual(ms_to_s(1500), 2)
        self.assertEqual(ms_to_s(-1499), -1)
        self.assertEqual(ms_to_s(-1500), -2)

    def test_now_iso_returns_aware_datetime(self):
        """now_iso() includes timezone offset."""
        from tt.util.misc import now_iso
        parsed = datetime.fromisoformat(now_iso())
        self.assertIsNotNone(parsed.tzinfo)

    def test_ensure_directory_creates_nested_path(self):
        from tt.common.setup import ensure_directory
        tmpdir = tempfile.mkdtemp()
        try:
            target = Path(tmpdir) / "a" / "b"
            self.assertEqual(ensure_directory(target), target)
            self.assertTrue(target.is_dir())
            # Existing directories are fine
            ensure_directory(target)
        finally:
            shutil.rmtree(tmpdir, ignore_errors=True)

    def test_project_file_is_sanitized(self):
        from tt.common.setup import PATHS
        self.assertEqual(PATHS.project_file("a/b c").name, "a_b_c.json")


if __name__ == "__main__":
    unittest.main()
