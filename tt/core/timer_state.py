import threading
from enum import Enum
from functools import partial
from tt.common.logger import log
from tt.core.config import TrackerSettings, DEFAULT_IDE_TIME_PATTERN, DEFAULT_GIT_TIME_PATTERN
from tt.core.pattern import NOTIFICATION_TIME_FORMATTING, TimePattern
from tt.util.misc import ms_to_s, now_ms

TICK_DELAY_MS = 1000
# A gap this long between two ticks means the process (or the whole machine) was frozen
TICK_JUMP_DETECTION_THRESHOLD_MS = TICK_DELAY_MS * 20


class _ResetTimeToZero:
    def __repr__(self):
        return "RESET_TIME_TO_ZERO"

# Passed to TimeTracker.add_or_reset_time() instead of a millisecond delta to zero the counted time.
RESET_TIME_TO_ZERO = _ResetTimeToZero()


class TrackingStatus(Enum):
    RUNNING = "running"
    IDLE = "idle"
    STOPPED = "stopped"


# All live trackers of one process, so that a tracker that starts running can pause the others. The registry lock is
# only held while copying the member list, never while calling into a tracker.
class TrackerRegistry:

    def __init__(self):
        self._lock = threading.Lock()
        self._trackers = []

    def add(self, tracker):
        with self._lock:
            if tracker not in self._trackers:
                self._trackers.append(tracker)

    def remove(self, tracker):
        with self._lock:
            if tracker in self._trackers:
                self._trackers.remove(tracker)

    def snapshot(self):
        with self._lock:
            return list(self._trackers)

    def __len__(self):
        with self._lock:
            return len(self._trackers)

    def __contains__(self, tracker):
        with self._lock:
            return tracker in self._trackers

    def pause_others(self, origin):
        for tracker in self.snapshot():
            if tracker is not origin:
                tracker.other_tracker_started()


# Property whose setter takes the tracker lock, for plain configuration values.
def _setting(attr):
    def getter(self):
        return getattr(self, attr)
    def setter(self, value):
        with self._lock:
            setattr(self, attr, value)
    return property(getter, setter)


# Tracks working time for a single project, pausing itself when the user goes idle. Wall-clock milliseconds come
# from `clock`, ticks from `scheduler`, and counted time is mirrored into `sink` while git integration is on.
#
# Every public method that changes state takes the per-tracker lock. Anything that calls out of the tracker
# (pausing other trackers, asking the user about idle time) is collected while locked and run after the lock is
# released.
class TimeTracker:

    def __init__(self, name, registry, scheduler, sink=None, clock=now_ms, settings=None, on_idle_return=None):
        self.name = name
        self.on_idle_return = on_idle_return
        self._registry = registry
        self._scheduler = scheduler
        self._sink = sink
        self._clock = clock
        self._lock = threading.RLock()
        self._ticker = None
        # Bumped on every cancel, ticks carry the generation they were scheduled in
        self._tick_generation = 0
        self._disposed = False

        now = clock()
        self._total_ms = 0
        self._status = TrackingStatus.STOPPED
        self._status_started_ms = now
        self._last_tick_ms = now
        self._last_activity_ms = now

        defaults = TrackerSettings()
        self._auto_start = defaults.auto_start
        self._idle_threshold_ms = defaults.idle_threshold_ms
        self._auto_count_idle_seconds = defaults.auto_count_idle_seconds
        self._stop_when_idle_rather_than_pausing = defaults.stop_when_idle_rather_than_pausing
        self._pause_other_tracker_instances = defaults.pause_other_tracker_instances
        self._git_integration = defaults.git_integration
        self._git_repo_path = defaults.git_repo_path
        self._git_hooks_path = defaults.git_hooks_path
        self._nagged_about = defaults.nagged_about
        # None until configured, see the pattern properties
        self._ide_time_pattern = None
        self._git_time_pattern = None

        registry.add(self)
        if settings is not None:
            self.import_state(settings)
        log.debug(f"Initialized new tracker '{name}'")

    def __repr__(self):
        return f"TimeTracker({self.name!r}, {self._status.name})"

    #region === Configuration ===

    auto_start = _setting("_auto_start")
    idle_threshold_ms = _setting("_idle_threshold_ms")
    auto_count_idle_seconds = _setting("_auto_count_idle_seconds")
    stop_when_idle_rather_than_pausing = _setting("_stop_when_idle_rather_than_pausing")
    pause_other_tracker_instances = _setting("_pause_other_tracker_instances")
    git_repo_path = _setting("_git_repo_path")
    git_hooks_path = _setting("_git_hooks_path")
    nagged_about = _setting("_nagged_about")

    @property
    def git_integration(self):
        return self._git_integration
    @git_integration.setter
    def git_integration(self, enable):
        with self._lock:
            self._git_integration = enable
            # Let the sink render the current value right away
            if enable:
                self._sink_apply(0)

    @property
    def sink(self):
        return self._sink
    @sink.setter
    def sink(self, sink):
        with self._lock:
            self._sink = sink

    # The host may ask for a pattern before settings were loaded, so an unset pattern reads as the notification one.
    @property
    def ide_time_pattern(self):
        pattern = self._ide_time_pattern
        return NOTIFICATION_TIME_FORMATTING if pattern is None else pattern
    @ide_time_pattern.setter
    def ide_time_pattern(self, pattern):
        if isinstance(pattern, str):
            pattern = TimePattern.parse(pattern)
        with self._lock:
            self._ide_time_pattern = pattern

    @property
    def git_time_pattern(self):
        pattern = self._git_time_pattern
        return NOTIFICATION_TIME_FORMATTING if pattern is None else pattern
    @git_time_pattern.setter
    def git_time_pattern(self, pattern):
        if isinstance(pattern, str):
            pattern = TimePattern.parse(pattern)
        with self._lock:
            self._git_time_pattern = pattern
            self._sink_apply(0)

    # Snapshot of the persisted settings record. The running segment is not included, call save_time() first to
    # fold it in.
    def export_state(self):
        with self._lock:
            return TrackerSettings(
                total_time_seconds=ms_to_s(self._total_ms),
                auto_start=self._auto_start,
                idle_threshold_ms=self._idle_threshold_ms,
                auto_count_idle_seconds=self._auto_count_idle_seconds,
                stop_when_idle_rather_than_pausing=self._stop_when_idle_rather_than_pausing,
                pause_other_tracker_instances=self._pause_other_tracker_instances,
                git_integration=self._git_integration,
                git_repo_path=self._git_repo_path,
                git_hooks_path=self._git_hooks_path,
                ide_time_pattern=self._ide_time_pattern.source if self._ide_time_pattern else DEFAULT_IDE_TIME_PATTERN,
                git_time_pattern=self._git_time_pattern.source if self._git_time_pattern else DEFAULT_GIT_TIME_PATTERN,
                nagged_about=self._nagged_about,
            )

    def import_state(self, settings):
        ide_pattern = TimePattern.parse(settings.ide_time_pattern)
        git_pattern = TimePattern.parse(settings.git_time_pattern)
        with self._lock:
            self._total_ms = settings.total_time_seconds * 1000
            self._auto_start = settings.auto_start
            self._idle_threshold_ms = settings.idle_threshold_ms
            self._auto_count_idle_seconds = settings.auto_count_idle_seconds
            self._stop_when_idle_rather_than_pausing = settings.stop_when_idle_rather_than_pausing
            self._pause_other_tracker_instances = settings.pause_other_tracker_instances
            self._nagged_about = settings.nagged_about
            self._ide_time_pattern = ide_pattern
            self._git_time_pattern = git_pattern
            self._git_repo_path = settings.git_repo_path
            self._git_hooks_path = settings.git_hooks_path
            # Assigned through the property so that an enabled sink gets the loaded value
            self.git_integration = settings.git_integration
        log.info(f"Imported settings into tracker '{self.name}', {settings.total_time_seconds}s counted so far")

    #endregion === Configuration ===

    #region === Status ===

    @property
    def status(self):
        return self._status

    # Counted time including the segment that is running right now.
    @property
    def total_time_ms(self):
        with self._lock:
            result = self._total_ms
            if self._status is TrackingStatus.RUNNING:
                result += max(0, self._clock() - self._status_started_ms)
            return result

    @property
    def total_time_seconds(self):
        return ms_to_s(self.total_time_ms)

    def status_text(self):
        return self.ide_time_pattern.render(self.total_time_seconds)

    def set_status(self, status):
        self.transition(status, self._clock())

    # Moves to `status` as of `at_ms`. Does nothing if the tracker already has that status.
    def transition(self, status, at_ms):
        with self._lock:
            deferred = self._transition(status, at_ms)
        self._run_deferred(deferred)

    def toggle_running(self):
        with self._lock:
            target = TrackingStatus.STOPPED if self._status is TrackingStatus.RUNNING else TrackingStatus.RUNNING
            deferred = self._transition(target, self._clock())
        self._run_deferred(deferred)

    def _transition(self, status, now):
        if self._status is status:
            return []
        if self._disposed and status is not TrackingStatus.STOPPED:
            log.warning(f"Tracker '{self.name}' is disposed, refusing to move to {status.name}")
            return []

        self._cancel_ticker()
        deferred = []
        ms_in_state = max(0, now - self._status_started_ms)

        if self._status is TrackingStatus.RUNNING:
            self._add_total_ms(ms_in_state)
        elif self._status is TrackingStatus.IDLE:
            # Short breaks count as work, longer ones are the user's call
            if ms_to_s(ms_in_state) <= self._auto_count_idle_seconds:
                self._add_total_ms(ms_in_state)
            elif ms_in_state > 1000 and self.on_idle_return is not None and not self._disposed:
                deferred.append(partial(self._offer_idle_time, ms_in_state))

        log.debug(f"Tracker '{self.name}' {self._status.name} -> {status.name} after {ms_in_state}ms")
        self._status_started_ms = now
        self._last_tick_ms = now
        self._last_activity_ms = now
        self._status = status

        if status is TrackingStatus.RUNNING:
            if self._pause_other_tracker_instances:
                deferred.append(partial(self._registry.pause_others, self))
            self._ticker = self._scheduler.schedule_with_fixed_delay(
                partial(self._scheduled_tick, self._tick_generation), TICK_DELAY_MS, name=f"{self.name}-tick")

        return deferred

    def _cancel_ticker(self):
        self._tick_generation += 1
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    @staticmethod
    def _run_deferred(deferred):
        for action in deferred:
            action()

    # Called by the registry when another tracker started running.
    def other_tracker_started(self):
        with self._lock:
            if self._status is TrackingStatus.STOPPED:
                return
            deferred = self._transition(TrackingStatus.IDLE, self._clock())
        self._run_deferred(deferred)

    #endregion === Status ===

    #region === Ticks and Activity ===

    def tick(self):
        self._tick(None)

    # Entry point for the scheduler. A tick that was already in flight when its task got cancelled is dropped here.
    def _scheduled_tick(self, generation):
        self._tick(generation)

    def _tick(self, generation):
        with self._lock:
            if generation is not None and generation != self._tick_generation:
                log.debug(f"Dropped stale tick for tracker '{self.name}'")
                return
            if self._status is not TrackingStatus.RUNNING:
                log.warning(f"Tick for tracker '{self.name}' when status is {self._status.name}")
                return

            now = self._clock()
            since_last_tick_ms = now - self._last_tick_ms
            since_last_activity_ms = now - self._last_activity_ms
            idle_status = TrackingStatus.STOPPED if self._stop_when_idle_rather_than_pausing else TrackingStatus.IDLE

            deferred = []
            if since_last_tick_ms > TICK_JUMP_DETECTION_THRESHOLD_MS:
                # Don't count the frozen time, stop where ticks were last expected
                last_valid_ms = self._last_tick_ms + TICK_JUMP_DETECTION_THRESHOLD_MS
                log.info(f"Tracker '{self.name}' detected a {since_last_tick_ms}ms gap between ticks")
                deferred = self._transition(idle_status, last_valid_ms)
            elif since_last_activity_ms >= self._idle_threshold_ms:
                last_valid_ms = self._last_activity_ms + self._idle_threshold_ms
                deferred = self._transition(idle_status, last_valid_ms)
            else:
                self._last_tick_ms = now
        self._run_deferred(deferred)

    # User did something, resets the idle timer and resumes counting if the tracker was idle.
    def notify_activity(self):
        now = self._clock()
        deferred = []
        with self._lock:
            self._last_activity_ms = now
            if self._status is TrackingStatus.IDLE:
                deferred = self._transition(TrackingStatus.RUNNING, now)
        self._run_deferred(deferred)

    # A document was edited. With auto start on, editing the active document starts the tracker.
    def notify_document_edited(self, in_active_editor=True):
        if not self._auto_start or not in_active_editor or self._status is TrackingStatus.RUNNING:
            return
        self.set_status(TrackingStatus.RUNNING)

    #endregion === Ticks and Activity ===

    #region === Counted Time ===

    def add_or_reset_time(self, milliseconds):
        with self._lock:
            if milliseconds is RESET_TIME_TO_ZERO:
                self._total_ms = 0
                self._status_started_ms = self._clock()
                self._sink_reset()
                log.debug(f"Reset tracker '{self.name}' to 0")
            else:
                self._add_total_ms(milliseconds)
                log.debug(f"Manually adjusted tracker '{self.name}' by {milliseconds}ms")

    # Folds the running segment into the counted total without changing status, e.g. before saving.
    def save_time(self):
        with self._lock:
            if self._status is TrackingStatus.RUNNING:
                now = self._clock()
                ms_in_state = max(0, now - self._status_started_ms)
                self._status_started_ms = now
                self._add_total_ms(ms_in_state)

    # Zeroes only what the sink counted, leaving the tracker's own total alone.
    def reset_sink_time(self):
        with self._lock:
            self._sink_reset()

    def _add_total_ms(self, milliseconds):
        self._total_ms = max(0, self._total_ms + milliseconds)
        self._sink_apply(ms_to_s(milliseconds))

    def _offer_idle_time(self, idle_ms):
        counted = False

        def count_in():
            nonlocal counted
            with self._lock:
                if counted:
                    return False
                counted = True
                self._add_total_ms(idle_ms)
            log.info(f"Counted {idle_ms}ms of idle time into tracker '{self.name}'")
            return True

        try:
            self.on_idle_return(idle_ms, count_in)
        except Exception:
            log.exception(f"Idle return handler of tracker '{self.name}' failed")

    #endregion === Counted Time ===

    #region === Sink ===

    def _sink_apply(self, seconds):
        if not self._git_integration or self._sink is None:
            return
        try:
            self._sink.apply(seconds, self.git_time_pattern)
        except Exception:
            log.exception(f"Time sink of tracker '{self.name}' failed to apply {seconds}s")

    def _sink_reset(self):
        if not self._git_integration or self._sink is None:
            return
        try:
            self._sink.reset(self.git_time_pattern)
        except Exception:
            log.exception(f"Time sink of tracker '{self.name}' failed to reset")

    #endregion === Sink ===

    # Stops the tracker for good, which folds any running time into the total.
    def dispose(self):
        self._registry.remove(self)
        with self._lock:
            self._disposed = True
            deferred = self._transition(TrackingStatus.STOPPED, self._clock())
        self._run_deferred(deferred)
        log.debug(f"Disposed tracker '{self.name}'")


# "Gone for 1 hour 5 minutes" style text for an idle span.
def gone_for_text(idle_ms):
    return f"Gone for {NOTIFICATION_TIME_FORMATTING.milliseconds_to_string(idle_ms)}"
