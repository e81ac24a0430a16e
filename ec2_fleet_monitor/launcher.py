# launcher.py
# Start a workflow script (zcsvs, finalize, ...) on a node in a detached tmux session named after the process.
# The job directory on the node is named after the instance, the script lives inside it.

import logging
import shlex

import paramiko

from ec2_fleet_monitor import discovery, ssh_probe
from ec2_fleet_monitor.errors import LaunchError, NodeConnectionError


logger = logging.getLogger(__name__)


def tmux_command(process_name, instance_name):
    inner = f"cd {shlex.quote(instance_name)} && sh {shlex.quote(process_name)}"
    return f"tmux new-session -d -s {shlex.quote(process_name)} {shlex.quote(inner)}"


def attach_hint(config, address, process_name):
    return f"ssh -i {config.key_path} {config.ssh_username}@{address} -t 'tmux attach -t {process_name}'"


def launch_process(process_name, instance_name, config, ec2_client=None, ssh_factory=paramiko.SSHClient):
    """
    Look instance_name up by Name tag and start process_name there. Returns (address, attach hint).
    Raises LaunchError for every failure so the cli can report it and exit non-zero.
    """
    ec2_client = ec2_client or discovery.create_ec2_client(config)

    logger.info(f"[launch] looking up IP address for instance {instance_name}")
    instance = discovery.find_instance_by_name(ec2_client, instance_name)
    if instance is None:
        raise LaunchError(f"Could not find running instance named {instance_name!r} in {config.region_name}")

    try:
        address = ssh_probe.select_address(instance, config.use_private_ip)
        ssh = ssh_probe.open_session(instance, config, ssh_factory)
    except NodeConnectionError as e:
        raise LaunchError(f"Cannot connect to {instance_name}: {e.message}", node=instance_name) from e

    command = tmux_command(process_name, instance_name)
    logger.info(f"[launch] {instance_name} ({address}): {command}")
    try:
        out, err, exit_status = ssh_probe.run_command(ssh, command, config.command_timeout)
    except (paramiko.SSHException, OSError) as e:
        raise LaunchError(f"tmux launch on {instance_name} failed: {e}", node=instance_name) from e
    finally:
        ssh.close()

    if exit_status != 0:
        raise LaunchError(f"tmux launch on {instance_name} exited {exit_status}: {err.strip() or out.strip()}",
                          node=instance_name)

    logger.info(f"[launch] {process_name} started on {instance_name} ({address})")
    return address, attach_hint(config, address, process_name)
