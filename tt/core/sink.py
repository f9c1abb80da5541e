"""Time sinks: where tracked time is mirrored for commit messages."""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from tt.common.logger import get_child

log = get_child("sink")

TIME_FILE_NAME = ".timetracker_commit_time"


class TimeSink:
    """Receives signed second deltas from a tracker.

    ``apply`` adds ``delta_seconds`` (which may be 0, meaning "re-render with
    this pattern") and ``reset`` starts counting from zero.
    """

    def apply(self, delta_seconds, pattern):
        raise NotImplementedError

    def reset(self, pattern):
        raise NotImplementedError


class NullSink(TimeSink):

    def apply(self, delta_seconds, pattern):
        pass

    def reset(self, pattern):
        pass


class AsyncSink(TimeSink):
    """Runs another sink's calls on a single worker thread.

    One worker keeps updates in submission order. Failures are logged and never
    reach the caller.
    """

    def __init__(self, inner):
        self.inner = inner
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tt-sink")

    def _submit(self, fn, *args):
        future = self._executor.submit(fn, *args)
        future.add_done_callback(self._report)
        return future

    @staticmethod
    def _report(future):
        error = future.exception()
        if error is not None:
            log.error("Time sink update failed", exc_info=error)

    def apply(self, delta_seconds, pattern):
        return self._submit(self.inner.apply, delta_seconds, pattern)

    def reset(self, pattern):
        return self._submit(self.inner.reset, pattern)

    def shutdown(self, wait=True):
        self._executor.shutdown(wait=wait)


class GitTimeFileSink(TimeSink):
    """Keeps the time file read by the ``prepare-commit-msg`` hook up to date.

    The file lives in the ``.git`` directory and has three lines:

    1. counted seconds, for the tracker's own bookkeeping
    2. the counted seconds rendered with the git pattern
    3. zero seconds rendered with the git pattern (the hook resets line 2 to
       this after a commit)
    """

    def __init__(self, git_dir):
        self.git_dir = Path(git_dir)

    @property
    def time_file(self):
        return self.git_dir / TIME_FILE_NAME

    def read_seconds(self):
        if not self.time_file.exists():
            return 0
        try:
            with open(self.time_file, "r", encoding="utf-8") as f:
                line = f.readline().strip()
        except (OSError, UnicodeDecodeError):
            log.warning(f"Failed to read git time file '{self.time_file}'", exc_info=True)
            return 0
        try:
            return int(line) if line else 0
        except ValueError:
            log.warning(f'Git time file did not contain only numbers: "{line}"')
            return 0

    def _write(self, seconds, pattern):
        try:
            with open(self.time_file, "w", encoding="utf-8", newline="\n") as f:
                f.write(f"{seconds}\n")
                f.write(f"{pattern.render(seconds)}\n")
                f.write(f"{pattern.render(0)}\n")
        except OSError:
            log.error(f"Error while writing git time file '{self.time_file}'", exc_info=True)
            return
        log.debug(f"Git time file now at {seconds}s")

    def apply(self, delta_seconds, pattern):
        # No repository (yet), nothing to keep in sync
        if not self.git_dir.is_dir():
            return
        self._write(max(0, self.read_seconds() + delta_seconds), pattern)

    def reset(self, pattern):
        if not self.git_dir.is_dir():
            return
        self._write(0, pattern)
