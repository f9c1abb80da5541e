import logging
import os
from pathlib import Path
from logging.handlers import RotatingFileHandler
from tt.common.setup import PATHS
from datetime import datetime

LOG_NAME = "timetracker"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(filename)s:%(lineno)d] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Adds the handler built by `factory` unless one with the same name is already attached, so that calling
# get_logger() twice never duplicates output.
def _attach_once(logger, handler_name, factory):
    if any(h.get_name() == handler_name for h in logger.handlers):
        return
    handler = factory()
    handler.set_name(handler_name)
    logger.addHandler(handler)

# Deletes all but the newest `keep` per-run debug logs.
def _prune_runs(run_dir: Path, name, keep):
    runs = sorted(run_dir.glob(f"{name}_*.log"),key=lambda p: p.stat().st_mtime,reverse=True)
    for run in runs[keep:]:
        try: run.unlink()
        except OSError: pass

def get_logger(
        name = LOG_NAME,
        level = logging.INFO,
        log_dir: Path | None = None,
        max_bytes = 5 * 1024 * 1024,
        backup_count = 5,
        persistent = True,
        console = False,
        historical_debugs: int = 10
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.propagate = False
    logger.setLevel(min(level, logging.DEBUG) if historical_debugs > 0 else level)

    log_dir = log_dir or PATHS.logs
    log_dir.mkdir(parents=True,exist_ok=True)
    fmt = logging.Formatter(LOG_FORMAT,LOG_DATE_FORMAT)

    def build_file(path, file_level, mode="a", rotating=False):
        def factory():
            if rotating:
                handler = RotatingFileHandler(filename=path,maxBytes=max_bytes,backupCount=backup_count,
                                              encoding="utf-8",delay=True)
            else:
                handler = logging.FileHandler(filename=path,mode=mode,encoding="utf-8",delay=True)
            handler.setLevel(file_level)
            handler.setFormatter(fmt)
            return handler
        return factory

    # Rolling log that survives between runs
    if persistent:
        _attach_once(logger, f"{name}:persistent", build_file(log_dir / f"{name}.log", level, rotating=True))

    # Only the current run, overwritten on each start
    _attach_once(logger, f"{name}:latest", build_file(log_dir / "latest.log", level, mode="w"))

    # Full DEBUG output of the last few runs, one file per run
    if historical_debugs > 0:
        run_dir = log_dir / "debug"
        run_dir.mkdir(parents=True,exist_ok=True)
        run_path = run_dir / f"{name}_{datetime.now():%Y-%m-%d_%H-%M-%S}.log"
        _attach_once(logger, f"{name}:historical_debug", build_file(run_path, logging.DEBUG))
        _prune_runs(run_dir, name, historical_debugs)

    if console:
        def console_factory():
            handler = logging.StreamHandler()
            handler.setLevel(level)
            handler.setFormatter(fmt)
            return handler
        _attach_once(logger, f"{name}:console", console_factory)

    return logger

# Returns a child of the main logger (e.g. "timetracker.sink"), which shares the main logger's handlers.
def get_child(suffix):
    return logging.getLogger(f"{LOG_NAME}.{suffix}")

# TT_LOG_LEVEL / TT_LOG_CONSOLE let a host or a test run turn the noise up without code changes.
_level = logging.getLevelName(os.getenv("TT_LOG_LEVEL", "INFO").upper())
if not isinstance(_level, int):
    _level = logging.INFO
log = get_logger(level=_level,console=os.getenv("TT_LOG_CONSOLE", "") == "1",historical_debugs=10)
log.info("=== INITIALIZED NEW SESSION ===")
