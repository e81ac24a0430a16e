# cli.py
# ec2-fleet-monitor monitor [--once] ...   : the refresh loop
# ec2-fleet-monitor launch PROCESS INSTANCE: start a workflow in tmux on one node

import argparse
import logging
import sys

from ec2_fleet_monitor.config import MonitorConfig
from ec2_fleet_monitor.errors import ConfigError, MonitorError
from ec2_fleet_monitor.launcher import launch_process
from ec2_fleet_monitor.monitor import FleetMonitor
from ec2_fleet_monitor.report import print_report
from ec2_fleet_monitor.utils import setup_logging


logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(prog="ec2-fleet-monitor", description="Monitor simulation jobs on an EC2 fleet")
    parser.add_argument("--log-level", help="logging level (default MONITOR_LOG_LEVEL or INFO)")
    parser.add_argument("--log-file", help="write logs to this file instead of stderr")
    parser.add_argument("--region", dest="region_name", help="EC2 region (default region_name from .env)")
    sub = parser.add_subparsers(dest="command")

    mon = sub.add_parser("monitor", help="refresh the fleet report until interrupted")
    mon.add_argument("--once", action="store_true", help="run a single cycle and exit")
    mon.add_argument("--interval", type=float, dest="interval_seconds", help="seconds between cycles")
    mon.add_argument("--instance-type", dest="instance_type", help="instance type to discover")
    mon.add_argument("--schedule-mode", choices=("fixed-delay", "fixed-rate"), dest="schedule_mode")
    mon.add_argument("--no-clear", action="store_true", help="do not clear the terminal before each report")

    launch = sub.add_parser("launch", help="start a workflow script in tmux on one instance")
    launch.add_argument("process", help="script in the job directory, e.g. zcsvs or finalize")
    launch.add_argument("instance", help="instance Name tag, e.g. zen00az180_OS_2ms")
    return parser


def _overrides(args):
    keys = ("region_name", "interval_seconds", "instance_type", "schedule_mode")
    overrides = {key: getattr(args, key, None) for key in keys}
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    overrides["log_file"] = args.log_file
    return overrides


def run_monitor(config, once=False, clear=True):
    monitor = FleetMonitor(config, render=lambda snapshot: print_report(snapshot, clear=clear))
    if once:
        # a skipped cycle (discovery failed) is a failed run
        return 0 if monitor.run_cycle() is not None else 1

    print(f"🚀 Starting EC2 fleet monitor - refreshing every {config.interval_seconds:g}s")
    print("Press Ctrl+C to stop monitoring\n")
    monitor.install_signal_handlers()
    monitor.run_forever()
    print("\n👋 Monitoring stopped by user")
    return 0


def run_launch(config, process, instance):
    try:
        address, hint = launch_process(process, instance, config)
    except MonitorError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    print(f"{process} process started successfully on {instance} ({address})")
    print("To check the tmux session, run:")
    print(hint)
    return 0


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "monitor"

    try:
        config = MonitorConfig.from_env(**_overrides(args))
    except ConfigError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 2
    setup_logging(config.log_level, config.log_file)

    if command == "launch":
        return run_launch(config, args.process, args.instance)

    try:
        return run_monitor(config, once=getattr(args, "once", False), clear=not getattr(args, "no_clear", False))
    except KeyboardInterrupt:
        print("\n👋 Monitoring stopped by user")
        return 0
