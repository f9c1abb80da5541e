import sys
from pathlib import Path
from PySide6.QtCore import Qt, QTimer
from PySide6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)
from tt.common.logger import log
from tt.core import config
from tt.core.sink import AsyncSink, GitTimeFileSink
from tt.core.timer_state import RESET_TIME_TO_ZERO, TimeTracker, TrackerRegistry, TrackingStatus
from tt.ui.host import ActivityFilter, QtScheduler, ask_count_idle

_STATUS_LABELS = {
    TrackingStatus.RUNNING: "Stop",
    TrackingStatus.IDLE: "Resume",
    TrackingStatus.STOPPED: "Start",
}


# ---------------------------------------------------------------------------
# Status window
# ---------------------------------------------------------------------------

# Small always-on-top window showing one project's counted time, standing in for an editor's status bar widget.
class StatusWindow(QMainWindow):

    def __init__(self, project_name, project_root=None, registry=None):
        super().__init__()
        self.project_name = project_name
        self.project_root = Path(project_root or Path.cwd())
        self.setWindowTitle(f"Time Tracker - {project_name}")
        self.setWindowFlags(self.windowFlags() | Qt.WindowStaysOnTopHint)

        # -- Tracker --
        settings = config.load_project_settings(project_name)
        self._sink = AsyncSink(GitTimeFileSink(self.project_root / settings.git_repo_path))
        self.tracker = TimeTracker(
            project_name,
            registry if registry is not None else TrackerRegistry(),
            QtScheduler(self),
            sink=self._sink,
            on_idle_return=ask_count_idle(self),
        )
        self.tracker.import_state(settings)
        if settings.auto_start:
            self.tracker.set_status(TrackingStatus.RUNNING)

        # -- Layout --
        central = QWidget()
        self.setCentralWidget(central)
        lay = QVBoxLayout(central)

        self._time_label = QLabel()
        self._time_label.setAlignment(Qt.AlignCenter)
        lay.addWidget(self._time_label)

        buttons = QHBoxLayout()
        self._toggle_btn = QPushButton()
        self._toggle_btn.clicked.connect(self._on_toggle)
        buttons.addWidget(self._toggle_btn)
        reset_btn = QPushButton("Reset")
        reset_btn.clicked.connect(self._on_reset)
        buttons.addWidget(reset_btn)
        lay.addLayout(buttons)

        # -- Refresh timer (1 s), separate from the tracker's own tick --
        self._tick_n = 0
        self._refresh = QTimer(self)
        self._refresh.timeout.connect(self._tick)
        self._refresh.start(1000)
        self._update_display()

    def _update_display(self):
        self._time_label.setText(self.tracker.status_text() or "0")
        self._toggle_btn.setText(_STATUS_LABELS[self.tracker.status])

    def _on_toggle(self):
        self.tracker.toggle_running()
        self._update_display()

    def _on_reset(self):
        answer = QMessageBox.question(self, "Reset time", "Reset the counted time of this project to zero?")
        if answer == QMessageBox.Yes:
            self.tracker.add_or_reset_time(RESET_TIME_TO_ZERO)
            self._update_display()

    def _tick(self):
        self._update_display()
        # Autosave every 20 s
        self._tick_n += 1
        if self._tick_n % 20 == 0:
            self._save()

    def _save(self):
        self.tracker.save_time()
        config.save_project_settings(self.project_name, self.tracker.export_state())

    def closeEvent(self, event):
        try:
            self.tracker.dispose()
            self._save()
        except Exception as e:
            log.exception("Failed to save tracker state on exit")
            QMessageBox.warning(self, "Save Error", f"Failed to save state:\n{e}")
        finally:
            self._sink.shutdown(wait=True)
        event.accept()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv=None):
    argv = list(sys.argv if argv is None else argv)
    project_name = argv[1] if len(argv) > 1 else Path.cwd().name
    app = QApplication(argv)
    window = StatusWindow(project_name)
    activity = ActivityFilter(window.tracker, app)
    app.installEventFilter(activity)
    window.show()
    sys.exit(app.exec())
