import threading
from tt.common.logger import log

# Handle returned by every scheduler. cancel() must be safe to call more than once and from any thread.
class ScheduledTask:

    def __init__(self, name):
        self.name = name
        self._cancelled = threading.Event()

    @property
    def cancelled(self):
        return self._cancelled.is_set()

    def cancel(self):
        if not self._cancelled.is_set():
            self._cancelled.set()
            log.debug(f"Cancelled scheduled task '{self.name}'")

# Headless scheduler, running each repeating task on its own daemon thread. The delay is measured from the end of one
# run to the start of the next (fixed delay, not fixed rate), so a slow callback never causes a burst of catch-up
# runs.
class ThreadScheduler:

    def schedule_with_fixed_delay(self, fn, delay_ms, name=None):
        task = ScheduledTask(name or getattr(fn, "__qualname__", "task"))
        delay = delay_ms / 1000.0

        def loop():
            # wait() returns True only once cancel() was called
            while not task._cancelled.wait(delay):
                # cancel() may have landed between the wakeup and here
                if task.cancelled:
                    break
                try:
                    fn()
                except Exception:
                    log.exception(f"Scheduled task '{task.name}' raised, will run again in {delay_ms}ms")

        thread = threading.Thread(target=loop, name=f"tt-tick-{task.name}", daemon=True)
        thread.start()
        log.debug(f"Scheduled '{task.name}' every {delay_ms}ms")
        return task
