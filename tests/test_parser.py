import pytest

from ec2_fleet_monitor.config import DEFAULT_TOTAL_STEPS, parse_total_steps
from ec2_fleet_monitor.errors import CommandError, ParseError
from ec2_fleet_monitor.models import InstanceRecord, RawProbe
from ec2_fleet_monitor.parser import (
    current_process,
    parse_csv_count,
    parse_disk_usage,
    parse_probe,
    parse_process_flags,
    parse_timestep,
    total_steps_for,
)

from ssh_fakes import CSV_OUT, DF_OUT, PS_OUT, TIMESTEP_OUT


TOTALS = parse_total_steps(DEFAULT_TOTAL_STEPS)
NODE = InstanceRecord(instance_id="i-0abc", name="zen00az180_OS_2ms", public_ip="1.2.3.4")


# ---------------------------------------------------------------------
# progress line
# ---------------------------------------------------------------------
def test_timestep_total_from_case_suffix():
    ts = parse_timestep(TIMESTEP_OUT, "zen00az180_OS_2ms", 100.0, TOTALS)
    assert (ts.step, ts.total_step, ts.observed_at, ts.sim_time) == (150, 24000, 100.0, 12.5)
    assert parse_timestep(TIMESTEP_OUT, "zen00az180_OS_17ms", 0.0, TOTALS).total_step == 18000


def test_timestep_total_on_the_line_wins():
    ts = parse_timestep("TimeStep 1520/2000 Time = 3.25", "no_case_here", 0.0, TOTALS)
    assert (ts.step, ts.total_step, ts.sim_time) == (1520, 2000, 3.25)


def test_timestep_uses_last_progress_line():
    text = "TimeStep 1: Time 0.1\nsome other output\nTimeStep 2: Time 0.2\n"
    assert parse_timestep(text, "zen_2ms", 0.0, TOTALS).step == 2


@pytest.mark.parametrize("text", ["", "   \n", "Reading mesh...\nSolver starting"])
def test_timestep_not_started_yet(text):
    with pytest.raises(ParseError) as exc:
        parse_timestep(text, "zen_2ms", 0.0, TOTALS)
    assert exc.value.metric == "timestep"


def test_timestep_garbled_line():
    with pytest.raises(ParseError):
        parse_timestep("TimeStep ???", "zen_2ms", 0.0, TOTALS)


def test_timestep_unknown_case():
    with pytest.raises(ParseError) as exc:
        parse_timestep(TIMESTEP_OUT, "zen00az180_OS_99ms", 0.0, TOTALS)
    assert "99ms" in exc.value.reason


def test_total_steps_for():
    assert total_steps_for("zen00az180_OS_7ms", TOTALS) == 18000
    assert total_steps_for("plain-name", TOTALS) is None


# ---------------------------------------------------------------------
# csv count / disk / processes
# ---------------------------------------------------------------------
@pytest.mark.parametrize("text, expected", [(CSV_OUT, 42), ("0\n", 0), ("", 0), ("ls: garbage", 0), ("-3", 0)])
def test_csv_count(text, expected):
    assert parse_csv_count(text) == expected


def test_disk_usage():
    disk = parse_disk_usage(DF_OUT)
    assert disk.total_bytes == 1000000000000
    assert disk.available_bytes == 750000000000
    assert disk.used_fraction == pytest.approx(0.25)


def test_disk_usage_with_header():
    text = "Filesystem 1-blocks Used Available Capacity Mounted on\n" + DF_OUT
    assert parse_disk_usage(text).used_bytes == 250000000000


@pytest.mark.parametrize("text", ["", "Filesystem 1-blocks Used", "/dev/root 10G 5G 5G 50% /", "garbage"])
def test_disk_usage_malformed(text):
    with pytest.raises(ParseError) as exc:
        parse_disk_usage(text)
    assert exc.value.metric == "disk"


def test_process_flags_substring_match():
    flags = parse_process_flags(PS_OUT)
    assert flags == {"zcsvs": True, "finalize": False, "s3 sync": False}

    flags = parse_process_flags("aws s3 sync ./out s3://bucket/out\nsh finalize")
    assert flags == {"zcsvs": False, "finalize": True, "s3 sync": True}


def test_current_process_priority():
    assert current_process({"zcsvs": True, "finalize": True, "s3 sync": True}) == "s3 sync"
    assert current_process({"zcsvs": True, "finalize": True, "s3 sync": False}) == "finalize"
    assert current_process({"zcsvs": False, "finalize": False, "s3 sync": False}) == "none"
    assert current_process({"zcsvs": None, "finalize": None, "s3 sync": None}) is None


# ---------------------------------------------------------------------
# parse_probe: one metric failing never touches its siblings
# ---------------------------------------------------------------------
def _raw(**outputs):
    return RawProbe(instance=NODE, observed_at=50.0, outputs=outputs)


def test_parse_probe_all_metrics():
    result = parse_probe(_raw(timestep=TIMESTEP_OUT, csv_count=CSV_OUT, disk=DF_OUT, processes=PS_OUT), TOTALS)

    assert result.reachable
    assert result.timestep.step == 150
    assert result.timestep.observed_at == 50.0
    assert result.csv_count == 42
    assert result.disk.used_fraction == pytest.approx(0.25)
    assert result.processes["zcsvs"] is True
    assert result.errors == {}


def test_parse_probe_disk_parse_failure_keeps_siblings():
    good = parse_probe(_raw(timestep=TIMESTEP_OUT, csv_count=CSV_OUT, disk=DF_OUT, processes=PS_OUT), TOTALS)
    bad = parse_probe(_raw(timestep=TIMESTEP_OUT, csv_count=CSV_OUT, disk="garbage", processes=PS_OUT), TOTALS)

    assert bad.disk is None
    assert isinstance(bad.errors["disk"], ParseError)
    assert bad.errors["disk"].node == NODE.name
    assert (bad.timestep, bad.csv_count, bad.processes) == (good.timestep, good.csv_count, good.processes)


def test_parse_probe_command_errors_carried_over():
    raw = _raw(timestep=TIMESTEP_OUT, disk=DF_OUT)
    raw.errors["csv_count"] = CommandError(NODE.name, "csv_count", "ls", exit_status=2, stderr="boom")
    raw.errors["processes"] = CommandError(NODE.name, "processes", "ps", stderr="timed out after 30s")

    result = parse_probe(raw, TOTALS)

    assert result.csv_count is None
    assert result.processes == {"zcsvs": None, "finalize": None, "s3 sync": None}
    assert set(result.errors) == {"csv_count", "processes"}
    assert result.timestep.step == 150
    assert result.disk is not None
