# config.py
# All runtime settings come from the environment (optionally a .env file in the working directory) and can be
# overridden from the command line. Names follow the deployment .env (region_name, instance_type, AWS_KEYPAIR, ...)

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

from ec2_fleet_monitor.errors import ConfigError


SCHEDULE_MODES = ("fixed-delay", "fixed-rate")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Case suffix in the instance name (e.g. zen00az180_OS_2ms) -> total timesteps of that simulation
DEFAULT_TOTAL_STEPS = "2ms=24000,7ms=18000,12ms=18000,17ms=18000"


@dataclass(frozen=True)
class MonitorConfig:
    region_name: str = "sa-east-1"
    instance_type: str = "c8g.48xlarge"
    tag_filters: Tuple[Tuple[str, str], ...] = ()
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    key_path: Optional[str] = None
    ssh_username: str = "ubuntu"
    ssh_port: int = 22
    connect_timeout: float = 15.0
    command_timeout: float = 30.0
    use_private_ip: bool = False
    interval_seconds: float = 360.0
    schedule_mode: str = "fixed-delay"
    max_workers: int = 64
    progress_file: str = "solve.out"
    total_steps_by_case: Dict[str, int] = field(default_factory=lambda: parse_total_steps(DEFAULT_TOTAL_STEPS))
    eta_history_limit: int = 0
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, env=None, dotenv=True, **overrides):
        if dotenv:
            load_dotenv()
        env = os.environ if env is None else env

        config = cls(
            region_name=_first(env, "region_name", "AWS_REGION", default="sa-east-1"),
            instance_type=_first(env, "instance_type", "MONITOR_INSTANCE_TYPE", default="c8g.48xlarge"),
            tag_filters=parse_tag_filters(env.get("MONITOR_TAG_FILTERS", "")),
            aws_access_key_id=env.get("AWS_ACCESS_KEY_ID") or None,
            aws_secret_access_key=env.get("AWS_SECRET_ACCESS_KEY") or None,
            key_path=_first(env, "AWS_KEYPAIR", "AWS_PEM_KEY"),
            ssh_username=env.get("SSH_USERNAME", "ubuntu"),
            ssh_port=_int(env, "SSH_PORT", 22),
            connect_timeout=_float(env, "SSH_CONNECT_TIMEOUT", 15.0),
            command_timeout=_float(env, "SSH_COMMAND_TIMEOUT", 30.0),
            use_private_ip=_bool(env, "USE_PRIVATE_IP", False),
            interval_seconds=_float(env, "MONITOR_INTERVAL_SECONDS", 360.0),
            schedule_mode=env.get("MONITOR_SCHEDULE_MODE", "fixed-delay"),
            max_workers=_int(env, "MONITOR_MAX_WORKERS", 64),
            progress_file=env.get("MONITOR_PROGRESS_FILE", "solve.out"),
            total_steps_by_case=parse_total_steps(env.get("MONITOR_TOTAL_STEPS", DEFAULT_TOTAL_STEPS)),
            eta_history_limit=_int(env, "MONITOR_ETA_HISTORY_LIMIT", 0),
            log_level=env.get("MONITOR_LOG_LEVEL", "INFO").upper(),
            log_file=env.get("MONITOR_LOG_FILE") or None,
        )
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if overrides:
            config = replace(config, **overrides)
        config.validate()
        return config

    def validate(self):
        if self.schedule_mode not in SCHEDULE_MODES:
            raise ConfigError(f"MONITOR_SCHEDULE_MODE must be one of {', '.join(SCHEDULE_MODES)}, got {self.schedule_mode!r}")
        if self.interval_seconds <= 0:
            raise ConfigError("MONITOR_INTERVAL_SECONDS must be positive")
        if self.connect_timeout <= 0 or self.command_timeout <= 0:
            raise ConfigError("SSH timeouts must be positive")
        if self.max_workers < 1:
            raise ConfigError("MONITOR_MAX_WORKERS must be at least 1")
        if self.eta_history_limit < 0:
            raise ConfigError("MONITOR_ETA_HISTORY_LIMIT must be >= 0")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"MONITOR_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}")


def parse_total_steps(value):
    """'2ms=24000,7ms=18000' -> {'2ms': 24000, '7ms': 18000}"""
    table = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        case, sep, steps = item.partition("=")
        if not sep or not case.strip():
            raise ConfigError(f"Bad MONITOR_TOTAL_STEPS entry {item!r}, expected case=steps")
        try:
            table[case.strip()] = int(steps)
        except ValueError:
            raise ConfigError(f"Bad step count in MONITOR_TOTAL_STEPS entry {item!r}") from None
    return table


def parse_tag_filters(value):
    """'Project=zen,Owner=cfd' -> (('Project', 'zen'), ('Owner', 'cfd'))"""
    filters = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, val = item.partition("=")
        if not sep or not key.strip():
            raise ConfigError(f"Bad MONITOR_TAG_FILTERS entry {item!r}, expected Key=Value")
        filters.append((key.strip(), val.strip()))
    return tuple(filters)


def _first(env, *names, default=None):
    for name in names:
        value = env.get(name)
        if value:
            return value
    return default


def _int(env, name, default):
    raw = env.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _float(env, name, default):
    raw = env.get(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _bool(env, name, default):
    raw = env.get(name)
    if raw in (None, ""):
        return default
    return raw.lower() in ("1", "true", "yes")
