# report.py
# Text table for one CycleSnapshot. Rows are sorted by node key so consecutive reports diff cleanly.

import sys
from datetime import datetime

from ec2_fleet_monitor.eta import format_duration
from ec2_fleet_monitor.models import TRACKED_PROCESSES, NodeStatus
from ec2_fleet_monitor.parser import current_process, metric_error


WIDTH = 160
UNKNOWN = "unknown"
UNREACHABLE = "unreachable"

COLUMNS = (
    ("Instance Name", 24, "<"),
    ("Status", 14, "<"),
    ("TimeStep", 22, ">"),
    ("Increase", 9, ">"),
    ("ETA", 10, ">"),
    ("Median ETA", 11, ">"),
    ("CSV", 6, ">"),
    ("Disk", 18, ">"),
    ("Processes", 33, "<"),
    ("Note", 0, "<"),
)

STATUS_ICONS = {
    NodeStatus.RUNNING: "🟢",
    NodeStatus.STALLED: "🟡",
    NodeStatus.COMPLETED: "✅",
    NodeStatus.UNREACHABLE: "❌",
    NodeStatus.AWAITING: "⚪",
}


def clear_terminal(stream=None):
    stream = stream or sys.stdout
    # move cursor home and clear screen
    stream.write("\x1b[2J\x1b[1;1H")
    stream.flush()


def human_bytes(num):
    for unit in ("B", "K", "M", "G", "T"):
        if abs(num) < 1024 or unit == "T":
            return f"{num:.0f}{unit}" if unit == "B" else f"{num:.1f}{unit}"
        num /= 1024.0


def truncate(text, width):
    if width and len(text) > width:
        return text[:width - 3] + "..."
    return text


def _row(values):
    cells = []
    for (_, width, align), value in zip(COLUMNS, values):
        value = truncate(value, width)
        cells.append(f"{value:{align}{width}}" if width else value)
    return " ".join(cells).rstrip()


def format_timestep(timestep):
    if timestep is None:
        return UNKNOWN
    # solver simulated time next to the step when the progress line carried one
    text = f"{timestep.step}/{timestep.total_step}"
    if timestep.sim_time is not None:
        text += f" @{timestep.sim_time:.2f}"
    return text


def format_increase(node):
    if node.result.timestep is None:
        return UNKNOWN
    if node.step_increase is None:
        return "first"
    return f"+{node.step_increase}"


def format_disk(disk):
    if disk is None:
        return UNKNOWN
    return f"{disk.used_fraction * 100:.0f}% ({human_bytes(disk.available_bytes)} free)"


def format_flag(value):
    if value is None:
        return "?"
    return "✔" if value else "✘"


def format_processes(processes):
    if not processes:
        return UNKNOWN
    return " ".join(f"{name}:{format_flag(processes.get(name))}" for name in TRACKED_PROCESSES)


def format_note(node):
    result = node.result
    if not result.reachable:
        return getattr(result.connection_error, "message", str(result.connection_error))
    notes = [metric_error(result, metric) for metric in ("timestep", "csv_count", "disk", "processes")]
    return "; ".join(note for note in notes if note)


def format_row(node):
    result = node.result
    status = f"{STATUS_ICONS[node.status]} {node.status.value}"
    if not result.reachable:
        return _row((node.key, status, UNREACHABLE, "", "N/A", format_duration(node.median_eta), UNREACHABLE,
                     UNREACHABLE, UNREACHABLE, format_note(node)))

    csv = UNKNOWN if result.csv_count is None else str(result.csv_count)
    return _row((
        node.key,
        status,
        format_timestep(result.timestep),
        format_increase(node),
        format_duration(node.instant_eta),
        format_duration(node.median_eta),
        csv,
        format_disk(result.disk),
        format_processes(result.processes),
        format_note(node),
    ))


def summary_line(snapshot):
    counts = {status: snapshot.count(status) for status in NodeStatus}
    line = (
        f"Summary: {len(snapshot.nodes)} nodes | {counts[NodeStatus.RUNNING]} running | "
        f"{counts[NodeStatus.STALLED]} stalled | {counts[NodeStatus.COMPLETED]} completed | "
        f"{counts[NodeStatus.UNREACHABLE]} unreachable | {counts[NodeStatus.AWAITING]} awaiting"
    )

    current = [current_process(node.result.processes) for node in snapshot.nodes.values() if node.result.reachable]
    per_process = [f"{current.count(name)} {name}" for name in TRACKED_PROCESSES]
    per_process.append(f"{current.count('none')} idle")
    return line + " || " + " | ".join(per_process)


def render_report(snapshot, title="SUMMARY REPORT"):
    taken_at = datetime.fromtimestamp(snapshot.taken_at).strftime("%Y-%m-%d %H:%M:%S")
    lines = [
        "=" * WIDTH,
        f"{title} @ {taken_at}",
        "=" * WIDTH,
        _row([name for name, _, _ in COLUMNS]),
        "-" * WIDTH,
    ]
    rows = snapshot.rows()
    if rows:
        lines.extend(format_row(node) for node in rows)
    else:
        lines.append("No matching instances found")
    lines.append("-" * WIDTH)
    lines.append(summary_line(snapshot))
    lines.append("=" * WIDTH)
    return "\n".join(lines)


def print_report(snapshot, clear=True, stream=None):
    stream = stream or sys.stdout
    if clear:
        clear_terminal(stream)
    stream.write(render_report(snapshot) + "\n")
    stream.flush()
