from PySide6.QtCore import QEvent, QMetaObject, QObject, QThread, QTimer, Qt
from PySide6.QtWidgets import QMessageBox
from tt.common.logger import log
from tt.core.scheduler import ScheduledTask
from tt.core.timer_state import gone_for_text

# Events that count as the user being at the keyboard.
ACTIVITY_EVENTS = frozenset({
    QEvent.KeyPress,
    QEvent.MouseButtonPress,
    QEvent.MouseMove,
    QEvent.Wheel,
})


# Scheduler backed by QTimer, so ticks are delivered on the Qt event loop. Must be used from the GUI thread.
class QtScheduler:

    def __init__(self, parent=None):
        self._parent = parent

    def schedule_with_fixed_delay(self, fn, delay_ms, name=None):
        task = _QtTask(name or getattr(fn, "__qualname__", "task"), QTimer(self._parent))
        task.timer.timeout.connect(fn)
        task.timer.start(delay_ms)
        log.debug(f"Scheduled '{task.name}' on QTimer every {delay_ms}ms")
        return task


class _QtTask(ScheduledTask):

    def __init__(self, name, timer):
        super().__init__(name)
        self.timer = timer

    def cancel(self):
        if self.cancelled:
            return
        if QThread.currentThread() == self.timer.thread():
            self.timer.stop()
        else:
            # QTimer may only be stopped from its own thread, let its event loop do it
            QMetaObject.invokeMethod(self.timer, "stop", Qt.QueuedConnection)
        self.timer.deleteLater()
        super().cancel()


# Application-wide event filter which reports input to a tracker. Install it on the QApplication so it sees every
# window's events.
class ActivityFilter(QObject):

    def __init__(self, tracker, parent=None):
        super().__init__(parent)
        self.tracker = tracker

    def eventFilter(self, obj, event):
        if event.type() in ACTIVITY_EVENTS:
            self.tracker.notify_activity()
        # Never consume the event, just watch it
        return False


# Builds a TimeTracker.on_idle_return callback that asks the user whether the time spent away should count.
def ask_count_idle(parent=None):
    def on_idle_return(idle_ms, count_in):
        # Deferred to the event loop since idle return may be noticed on a tick thread
        def ask():
            answer = QMessageBox.question(
                parent,
                "Welcome back",
                f"{gone_for_text(idle_ms)}.\nCount this time in?",
                QMessageBox.Yes | QMessageBox.No,
                QMessageBox.No,
            )
            if answer == QMessageBox.Yes:
                count_in()
        QTimer.singleShot(0, ask)
    return on_idle_return
