# parser.py
# Turn raw command output from ssh_probe into structured metrics. Everything here is pure so it can be tested
# against captured output without a node.

import re

from ec2_fleet_monitor.errors import CommandError, ParseError
from ec2_fleet_monitor.models import TRACKED_PROCESSES, DiskUsage, InstanceProbeResult, TimeStep


# Solver progress lines look like "TimeStep    1520: Time  12.345" or, when the solver knows its target,
# "TimeStep 1520/24000 Time = 12.345"
TIMESTEP_RE = re.compile(
    r"TimeStep\s*[=:]?\s*(?P<step>\d+)"
    r"(?:\s*/\s*(?P<total>\d+))?"
    r"(?:.*?Time\s*[=:]?\s*(?P<time>[-+]?\d+(?:\.\d*)?(?:[eE][-+]?\d+)?))?"
)

# Priority when several workflows run at once: the later stage wins
PROCESS_PRIORITY = ("s3 sync", "finalize", "zcsvs")


def total_steps_for(instance_name, total_steps_by_case):
    """Total steps from the case suffix in the instance name, e.g. zen00az180_OS_2ms -> 24000."""
    for token in reversed(instance_name.split("_")):
        if token in total_steps_by_case:
            return total_steps_by_case[token]
    return None


def parse_timestep(text, instance_name, observed_at, total_steps_by_case):
    lines = [line for line in (text or "").splitlines() if "TimeStep" in line]
    if not lines:
        raise ParseError("timestep", "no TimeStep line yet", node=instance_name)

    match = TIMESTEP_RE.search(lines[-1])
    if match is None:
        raise ParseError("timestep", f"unrecognised progress line {lines[-1].strip()!r}", node=instance_name)

    if match.group("total") is not None:
        total = int(match.group("total"))
    else:
        total = total_steps_for(instance_name, total_steps_by_case)
        if total is None:
            raise ParseError("timestep", f"no total step count known for case {instance_name!r}", node=instance_name)

    sim_time = float(match.group("time")) if match.group("time") is not None else None
    return TimeStep(step=int(match.group("step")), total_step=total, observed_at=observed_at, sim_time=sim_time)


def parse_csv_count(text):
    # the job directory may not exist yet, anything unreadable counts as zero files
    try:
        count = int((text or "").strip().splitlines()[-1].strip())
    except (ValueError, IndexError):
        return 0
    return max(count, 0)


def parse_disk_usage(text):
    """Data row of `df -P -B1 /`: Filesystem 1-blocks Used Available Capacity Mounted-on."""
    rows = [line for line in (text or "").splitlines() if line.strip() and not line.startswith("Filesystem")]
    if not rows:
        raise ParseError("disk", "empty df output")

    fields = rows[-1].split()
    if len(fields) < 6:
        raise ParseError("disk", f"unexpected df row {rows[-1].strip()!r}")
    try:
        total, used, available = (int(v) for v in fields[1:4])
    except ValueError:
        raise ParseError("disk", f"non numeric df row {rows[-1].strip()!r}") from None
    return DiskUsage(total_bytes=total, used_bytes=used, available_bytes=available)


def parse_process_flags(text, tracked=None):
    tracked = TRACKED_PROCESSES if tracked is None else tracked
    lines = (text or "").splitlines()
    return {name: any(pattern in line for line in lines) for name, pattern in tracked.items()}


def current_process(flags):
    """Highest priority running workflow, 'none' when nothing runs, None when the listing failed."""
    if not flags or all(value is None for value in flags.values()):
        return None
    for name in PROCESS_PRIORITY:
        if flags.get(name):
            return name
    return "none"


def parse_probe(raw, total_steps_by_case, tracked=None):
    """
    Build the InstanceProbeResult for one RawProbe. Each metric is parsed on its own; a command or parse
    failure is stored under its metric name in result.errors and leaves the sibling metrics untouched.
    """
    tracked = TRACKED_PROCESSES if tracked is None else tracked
    name = raw.instance.name
    result = InstanceProbeResult(instance=raw.instance, observed_at=raw.observed_at)
    result.errors.update(raw.errors)

    if "timestep" in raw.outputs:
        try:
            result.timestep = parse_timestep(raw.outputs["timestep"], name, raw.observed_at, total_steps_by_case)
        except ParseError as e:
            result.errors["timestep"] = e

    if "csv_count" in raw.outputs:
        result.csv_count = parse_csv_count(raw.outputs["csv_count"])

    if "disk" in raw.outputs:
        try:
            result.disk = parse_disk_usage(raw.outputs["disk"])
        except ParseError as e:
            e.node = name
            result.errors["disk"] = e

    if "processes" in raw.outputs:
        result.processes = parse_process_flags(raw.outputs["processes"], tracked)
    else:
        result.processes = {process: None for process in tracked}

    return result


def metric_error(result, metric):
    """Short text for a failed metric, used in the report notes column."""
    error = result.errors.get(metric)
    if error is None:
        return None
    if isinstance(error, CommandError) and error.exit_status is None:
        return f"{metric} timeout/err"
    return getattr(error, "message", str(error))
