# models.py
# Plain data carried between discovery, probe, parser, eta engine and the report.

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


# The three tracked workflows on a node, in report order. The value is the substring searched for in the
# remote process listing. Priority for "current process" is the reverse of this order (s3 sync wins).
TRACKED_PROCESSES = {
    "zcsvs": "zcsvs",
    "finalize": "finalize",
    "s3 sync": "s3 sync",
}


@dataclass(frozen=True)
class InstanceRecord:
    instance_id: str
    name: str
    public_ip: Optional[str] = None
    private_ip: Optional[str] = None
    instance_type: Optional[str] = None


@dataclass(frozen=True)
class TimeStep:
    step: int
    total_step: int
    observed_at: float
    sim_time: Optional[float] = None

    @property
    def complete(self):
        return self.step >= self.total_step


@dataclass(frozen=True)
class DiskUsage:
    total_bytes: int
    used_bytes: int
    available_bytes: int

    @property
    def used_fraction(self):
        if self.total_bytes <= 0:
            return 0.0
        return self.used_bytes / self.total_bytes


@dataclass
class RawProbe:
    """Raw command output for one node. outputs and errors are keyed by metric name and never share a key."""
    instance: InstanceRecord
    observed_at: float
    outputs: Dict[str, str] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)


@dataclass
class InstanceProbeResult:
    instance: InstanceRecord
    observed_at: float
    connection_error: Optional[Exception] = None
    timestep: Optional[TimeStep] = None
    csv_count: Optional[int] = None
    disk: Optional[DiskUsage] = None
    processes: Dict[str, Optional[bool]] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)

    @property
    def reachable(self):
        return self.connection_error is None

    @classmethod
    def unreachable(cls, instance, observed_at, error):
        return cls(instance=instance, observed_at=observed_at, connection_error=error)


class NodeStatus(Enum):
    RUNNING = "running"
    STALLED = "stalled"
    COMPLETED = "completed"
    UNREACHABLE = "unreachable"
    AWAITING = "awaiting"


class EtaState(Enum):
    NO_DATA = "no_data"
    CURRENT = "current"
    MEDIAN = "median"
    COMPLETE = "complete"


@dataclass
class NodeSnapshot:
    key: str
    result: InstanceProbeResult
    status: NodeStatus
    step_increase: Optional[int] = None
    instant_eta: Optional[float] = None
    median_eta: Optional[float] = None
    eta_state: EtaState = EtaState.NO_DATA


@dataclass
class CycleSnapshot:
    taken_at: float
    nodes: Dict[str, NodeSnapshot] = field(default_factory=dict)

    def rows(self):
        return [self.nodes[key] for key in sorted(self.nodes)]

    def count(self, status):
        return sum(1 for node in self.nodes.values() if node.status is status)
