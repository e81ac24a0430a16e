# ssh_probe.py
# One SSH session per node, a fixed battery of read-only commands. A command that fails or times out only loses
# its own metric; the session keeps going so a stuck solve.out read does not hide the disk reading.

import logging
import os
import shlex
import socket
import time

import paramiko

from ec2_fleet_monitor.errors import CommandError, KeyFileNotFoundError, NodeConnectionError
from ec2_fleet_monitor.models import RawProbe


logger = logging.getLogger(__name__)


METRICS = ("timestep", "csv_count", "disk", "processes")

EXIT_POLL_INTERVAL = 0.1


def build_commands(instance_name, progress_file="solve.out"):
    """metric -> remote command. The job directory on every node is named after the instance."""
    job_dir = shlex.quote(instance_name)
    return {
        "timestep": f"grep TimeStep {job_dir}/{shlex.quote(progress_file)} | tail -n1",
        "csv_count": f"ls {job_dir}/*.csv 2>/dev/null | wc -l",
        "disk": "df -P -B1 / | tail -n1",
        "processes": "ps -eo args",
    }


def select_address(instance, use_private_ip=False):
    address = instance.private_ip if use_private_ip else instance.public_ip
    if not address:
        kind = "private" if use_private_ip else "public"
        raise NodeConnectionError(instance.name, "no_address", f"no {kind} IP available")
    return address


def open_session(instance, config, ssh_factory=paramiko.SSHClient):
    """Connected SSHClient for instance or NodeConnectionError. The caller closes it."""
    address = select_address(instance, config.use_private_ip)

    key_path = os.path.expanduser(config.key_path) if config.key_path else None
    if not key_path or not os.path.isfile(key_path):
        raise KeyFileNotFoundError(instance.name, key_path or "<AWS_KEYPAIR not set>")
    if not os.access(key_path, os.R_OK):
        raise NodeConnectionError(instance.name, "key_unreadable", f"cannot read {key_path}")

    ssh = ssh_factory()
    ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    try:
        ssh.connect(
            hostname=address,
            port=config.ssh_port,
            username=config.ssh_username,
            key_filename=key_path,
            timeout=config.connect_timeout,
            banner_timeout=config.connect_timeout,
            auth_timeout=config.connect_timeout,
            look_for_keys=False,
            allow_agent=False,
        )
    except paramiko.AuthenticationException as e:
        ssh.close()
        raise NodeConnectionError(instance.name, "auth", str(e)) from e
    except socket.timeout as e:
        ssh.close()
        raise NodeConnectionError(instance.name, "timeout", f"connect to {address} timed out") from e
    except (paramiko.SSHException, OSError) as e:
        # NoValidConnectionsError and refused/unreachable sockets land here too
        ssh.close()
        raise NodeConnectionError(instance.name, "connect", f"{address}: {e}") from e
    return ssh


def wait_exit_status(channel, timeout, clock=time.monotonic, sleep=time.sleep):
    """recv_exit_status() bounded by timeout. Raises socket.timeout while the remote command is still running."""
    deadline = clock() + timeout
    while not channel.exit_status_ready():
        remaining = deadline - clock()
        if remaining <= 0:
            raise socket.timeout(f"no exit status after {timeout:g}s")
        sleep(min(EXIT_POLL_INTERVAL, remaining))
    return channel.recv_exit_status()


def run_command(ssh, command, timeout):
    """(stdout, stderr, exit_status) for one command. socket.timeout propagates when the channel stalls."""
    stdin, stdout, stderr = ssh.exec_command(command, timeout=timeout)
    out = stdout.read().decode(errors="ignore")
    err = stderr.read().decode(errors="ignore")
    exit_status = wait_exit_status(stdout.channel, timeout)
    return out, err, exit_status


def execute_metric(ssh, node, metric, command, timeout):
    try:
        out, err, exit_status = run_command(ssh, command, timeout)
    except socket.timeout:
        raise CommandError(node, metric, command, stderr=f"timed out after {timeout:g}s") from None
    except (paramiko.SSHException, OSError, EOFError) as e:
        raise CommandError(node, metric, command, stderr=str(e)) from e
    if exit_status != 0:
        raise CommandError(node, metric, command, exit_status=exit_status, stderr=err)
    return out.strip()


def probe_instance(instance, config, ssh_factory=paramiko.SSHClient, clock=time.time):
    """
    Run the command battery on one node. Connection problems raise NodeConnectionError; per command problems
    are collected in RawProbe.errors next to the outputs of the commands that worked.
    """
    logger.info(f"[probe] {instance.name} ({instance.instance_id}) connecting")
    ssh = open_session(instance, config, ssh_factory)
    raw = RawProbe(instance=instance, observed_at=clock())
    try:
        for metric, command in build_commands(instance.name, config.progress_file).items():
            try:
                raw.outputs[metric] = execute_metric(ssh, instance.name, metric, command, config.command_timeout)
            except CommandError as e:
                logger.warning(f"[probe] {instance.name} {e.message}")
                raw.errors[metric] = e
            if metric == "timestep":
                # the ETA rate is measured against the moment the progress line was read
                raw.observed_at = clock()
    finally:
        ssh.close()
    logger.info(f"[probe] {instance.name} done, {len(raw.outputs)}/{len(METRICS)} metrics read")
    return raw
