import os
import sys
from pathlib import Path
from dataclasses import dataclass

# Lil helper function to create missing directories if missing.
def ensure_directory(path: Path):
    path.mkdir(parents=True,exist_ok=True)
    return path

# Picks the per-user data folder. TT_DATA_DIR always wins (tests and portable installs use it), then APPDATA on
# Windows, then the XDG data home everywhere else.
def _resolve_data_root():
    override = os.getenv("TT_DATA_DIR")
    if override:
        return Path(override)
    if sys.platform.startswith("win"):
        appdata = os.getenv("APPDATA")
        if not appdata:
            raise RuntimeError("Missing APPDATA environment variable, cannot determine data directories.")
        return Path(appdata) / "TimeTracker"
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / "timetracker"

# Dataclass for accessing paths across program.
@dataclass(frozen=False)
class ProjectPaths:

    data: Path
    logs: Path
    projects: Path

    # File holding the defaults applied to projects that have no settings of their own yet
    @property
    def defaults_file(self):
        return self.data / "defaults.json"

    # Per-project settings file, named after the project
    def project_file(self, project_name):
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in project_name) or "default"
        return self.projects / f"{safe}.json"

    @staticmethod
    def build():
        data = ensure_directory(_resolve_data_root())

        # Folders within the data folder
        logs = ensure_directory(data / "logs")
        projects = ensure_directory(data / "projects")

        return ProjectPaths(
            data = data,
            logs = logs,
            projects = projects,
        )
PATHS = ProjectPaths.build()
