import time
from datetime import datetime


# Simply returns the current local time as an ISO8601 string with timezone offset.
def now_iso():
    return datetime.now().astimezone().isoformat()


# Wall clock in whole milliseconds. Wall time (not monotonic) is what lets the tracker notice that the machine was
# suspended, since monotonic clocks may stop counting while asleep.
def now_ms():
    return int(time.time() * 1000)


# Converts milliseconds to whole seconds, rounding halves away from zero so that a delta and its negation convert to
# opposite values (1500ms is 2s, -1500ms is -2s).
def ms_to_s(ms):
    if ms >= 0:
        return (ms + 500) // 1000
    return -((500 - ms) // 1000)
