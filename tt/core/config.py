import json
from dataclasses import dataclass, fields, replace, asdict
from tt.common.logger import log
from tt.common.setup import PATHS
from tt.util.misc import now_iso


_SCHEMA_VERSION = 1

#region === Settings Record ===

# Bits of TrackerSettings.nagged_about, recording which features the user was already asked to enable.
NAGGED_ABOUT_GIT_INTEGRATION = 1

DEFAULT_IDE_TIME_PATTERN = '{{lh "hr"s}} {{lm "min"}} {{ts "sec"}}'
DEFAULT_GIT_TIME_PATTERN = 'Took {{lh "hour"s}} {{lm "minute"s}} {{ts "second"s}}'
DEFAULT_GIT_REPO_PATH = ".git"
DEFAULT_GIT_HOOKS_PATH = ".git/hooks"

# Flat record of everything a tracker persists per project. Pattern fields hold the source strings, compiling them is
# the tracker's job.
@dataclass
class TrackerSettings:
    total_time_seconds: int = 0
    auto_start: bool = True
    idle_threshold_ms: int = 2 * 60 * 1000
    auto_count_idle_seconds: int = 60
    stop_when_idle_rather_than_pausing: bool = False
    pause_other_tracker_instances: bool = True
    git_integration: bool = False
    git_repo_path: str = DEFAULT_GIT_REPO_PATH
    git_hooks_path: str = DEFAULT_GIT_HOOKS_PATH
    ide_time_pattern: str = DEFAULT_IDE_TIME_PATTERN
    git_time_pattern: str = DEFAULT_GIT_TIME_PATTERN
    nagged_about: int = 0

    # Takes every configuration value from `template` but keeps this project's own counted time.
    def with_defaults_from(self, template):
        return replace(template, total_time_seconds=self.total_time_seconds)

    def to_dict(self):
        return asdict(self)

    # Builds settings from a dict, defaulting every key that is missing or has the wrong type. Returns the settings
    # and the set of defaulted key names.
    @classmethod
    def from_dict(cls, data):
        defaults = cls()
        values = {}
        defaulted = set()
        for f in fields(cls):
            default = getattr(defaults, f.name)
            value = data.get(f.name)
            # bool is an int subclass, so booleans are checked first and ints must not be bools
            if isinstance(default, bool):
                ok = isinstance(value, bool)
            elif isinstance(default, int):
                ok = isinstance(value, int) and not isinstance(value, bool)
            else:
                ok = isinstance(value, type(default))
            if not ok:
                defaulted.add(f.name)
                value = default
            values[f.name] = value
        return cls(**values), defaulted

#endregion === Settings Record ===

#region === Saving and Loading Settings ===

# Loads tracker settings from the given json file. Any missing or broken value falls back to its default (see
# `fallback`), and a file that can't be read at all gives the fallback as a whole.
def load_settings(path, fallback=None):
    fallback = fallback if fallback is not None else TrackerSettings()
    try:
        if not path.exists():
            log.info(f"No existing settings found at '{path}', using defaults.")
            return replace(fallback)

        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)

        if not isinstance(document, dict):
            raise TypeError(f"Expected a json object in '{path}', got {type(document).__name__}")
        meta = document.get("meta")
        if not isinstance(meta, dict) or not isinstance(meta.get("schema_version"), int):
            log.warning(f"Settings file '{path}' has no valid meta.schema_version, assuming {_SCHEMA_VERSION}.")

        raw = document.get("settings")
        if not isinstance(raw, dict):
            log.warning(f"Settings file '{path}' has no settings section, using defaults.")
            return replace(fallback)

        # Defaulted keys come from the fallback rather than the built-in defaults
        settings, defaulted = TrackerSettings.from_dict(raw)
        for key in defaulted:
            setattr(settings, key, getattr(fallback, key))

        if defaulted:
            log.warning(f"Successfully loaded settings from '{path}', but with missing values that were defaulted: {', '.join(sorted(defaulted))}")
        else:
            log.info(f"Successfully loaded settings from '{path}'.")
        return settings
    except (FileNotFoundError, json.JSONDecodeError, OSError, TypeError):
        log.warning(f"Ran into an error while trying to load '{path}', falling back to default settings.",exc_info=True)
        return replace(fallback)

# Writes the given settings to disk as json.
def save_settings(settings, path):
    document = {
        "meta": {
            "schema_version": _SCHEMA_VERSION,
            "saved_at": now_iso(),
        },
        "settings": settings.to_dict(),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2)
    tmp_path.replace(path)
    log.info(f"Successfully saved settings to '{path}'")

# The defaults store: settings used for any project that has none of its own yet.
def load_defaults():
    return load_settings(PATHS.defaults_file)
def save_defaults(settings):
    # Counted time is per project, never part of the defaults
    save_settings(replace(settings, total_time_seconds=0), PATHS.defaults_file)

# Settings for one project, based on the stored defaults when the project has no file yet.
def load_project_settings(project_name):
    return load_settings(PATHS.project_file(project_name), fallback=load_defaults())
def save_project_settings(project_name, settings):
    save_settings(settings, PATHS.project_file(project_name))

#endregion === Saving and Loading Settings ===
