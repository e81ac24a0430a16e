# eta.py
# ETA engine: the instantaneous estimate from the last two observations of a node, the per node history of those
# estimates across cycles and its median, and the d/h/m formatting used in the report.

import math
from collections import deque

from ec2_fleet_monitor.models import EtaState


def instantaneous_eta(previous, current):
    """
    Seconds to completion from two consecutive TimeSteps, or None when no rate can be measured: first
    observation, stalled or restarted job (step did not increase), total_step changed, or no time elapsed.
    """
    if previous is None or current is None:
        return None
    if previous.total_step != current.total_step:
        return None
    step_delta = current.step - previous.step
    elapsed = current.observed_at - previous.observed_at
    if step_delta <= 0 or elapsed <= 0:
        return None
    if current.step >= current.total_step:
        return 0.0
    rate = step_delta / elapsed
    return (current.total_step - current.step) / rate


def median(values):
    if not values:
        return None
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2.0


def format_duration(seconds):
    """
    185 min -> '3h 5m', 180 min -> '3h 0m', 2d 5h 30m -> '2d 5h 30m', 2d 5m -> '2d 5m', 45 min -> '45m',
    0 -> '0m'. None -> 'N/A'. Minutes are always shown; zero days and zero hours are dropped.
    """
    if seconds is None:
        return "N/A"
    total_minutes = int(math.floor(max(seconds, 0.0) / 60.0 + 0.5))
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    parts.append(f"{minutes}m")
    return " ".join(parts)


class EtaHistory:
    """
    Per node list of every instantaneous ETA computed so far, in cycle order. Lives for the whole process and
    is only written by the monitor's control thread after all probes of a cycle have returned.
    maxlen=0 keeps everything.
    """

    def __init__(self, maxlen=0):
        self.maxlen = maxlen or None
        self._etas = {}
        self._completed = set()

    def record(self, key, eta_seconds):
        if key not in self._etas:
            self._etas[key] = deque(maxlen=self.maxlen)
        self._etas[key].append(eta_seconds)

    def values(self, key):
        return list(self._etas.get(key, ()))

    def observe(self, key, timestep):
        # once a job reaches its total it stays complete until a later reading shows it below total again
        if timestep is None:
            return
        if timestep.complete:
            self._completed.add(key)
        else:
            self._completed.discard(key)

    def is_complete(self, key):
        return key in self._completed

    def median(self, key):
        return median(self.values(key))

    def reported_median(self, key):
        """Median shown in the report: zero for a completed job whatever the stale history says."""
        if self.is_complete(key):
            return 0.0
        return self.median(key)

    def state(self, key):
        if self.is_complete(key):
            return EtaState.COMPLETE
        count = len(self._etas.get(key, ()))
        if count == 0:
            return EtaState.NO_DATA
        if count == 1:
            return EtaState.CURRENT
        return EtaState.MEDIAN

    def __contains__(self, key):
        return key in self._etas
