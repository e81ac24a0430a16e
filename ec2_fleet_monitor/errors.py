# errors.py
# Error classes for the fleet monitor. Everything below DiscoveryError is per node and travels as data inside
# InstanceProbeResult so a single bad node never aborts a cycle.


class MonitorError(Exception):
    """Base class for every error the monitor raises on purpose."""

    def __init__(self, message, node=None):
        super().__init__(message)
        self.message = message
        self.node = node


class ConfigError(MonitorError):
    pass


class DiscoveryError(MonitorError):
    """The inventory call itself failed. Fatal for the current cycle only."""


class NodeConnectionError(MonitorError):
    """
    Could not get a usable SSH session on a node (no address, unreadable key, handshake, auth or timeout).
    reason is a short tag for the report column: no_address, key_missing, key_unreadable, auth, timeout, connect.
    """

    def __init__(self, node, reason, detail=""):
        message = f"{reason}: {detail}" if detail else reason
        super().__init__(message, node=node)
        self.reason = reason
        self.detail = detail


class KeyFileNotFoundError(NodeConnectionError):

    def __init__(self, node, path):
        super().__init__(node, "key_missing", f"SSH key file not found: {path}")
        self.path = path


class CommandError(MonitorError):
    """One remote command exited non-zero, timed out or broke the channel. Scoped to one metric."""

    def __init__(self, node, metric, command, exit_status=None, stderr=""):
        if exit_status is None:
            message = f"{metric}: command failed ({stderr.strip() or 'no output'})"
        else:
            message = f"{metric}: exit {exit_status} ({stderr.strip() or 'no stderr'})"
        super().__init__(message, node=node)
        self.metric = metric
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr


class ParseError(MonitorError):
    """Remote output did not have the expected shape. Scoped to one metric."""

    def __init__(self, metric, reason, node=None):
        super().__init__(f"{metric}: {reason}", node=node)
        self.metric = metric
        self.reason = reason


class LaunchError(MonitorError):
    pass
