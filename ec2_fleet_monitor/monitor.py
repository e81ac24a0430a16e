# monitor.py
# The monitoring cycle: discover -> probe every node in parallel -> parse -> update ETA state -> render.
#
# Probe threads only return values. The previous-step map and the ETA history are touched exclusively by the
# thread that runs run_cycle(), after every future of the cycle has completed, so nothing here needs a lock.

import logging
import signal
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from functools import partial

from ec2_fleet_monitor import discovery, report, ssh_probe
from ec2_fleet_monitor.errors import DiscoveryError, MonitorError, NodeConnectionError
from ec2_fleet_monitor.eta import EtaHistory, instantaneous_eta
from ec2_fleet_monitor.models import CycleSnapshot, InstanceProbeResult, NodeSnapshot, NodeStatus
from ec2_fleet_monitor.parser import parse_probe
from ec2_fleet_monitor.utils import node_keys


logger = logging.getLogger(__name__)


def classify(result, step_increase, completed):
    if not result.reachable:
        return NodeStatus.UNREACHABLE
    if completed:
        return NodeStatus.COMPLETED
    if result.timestep is None:
        return NodeStatus.AWAITING
    if step_increase == 0:
        return NodeStatus.STALLED
    return NodeStatus.RUNNING


class CycleScheduler:
    """
    fixed-delay: sleep the whole interval after each cycle, so cycle time adds to the period.
    fixed-rate: cycles start on start + n * interval; slots missed by a slow cycle are skipped.
    """

    def __init__(self, interval, mode="fixed-delay", clock=time.monotonic):
        self.interval = interval
        self.mode = mode
        self.clock = clock
        self._next_due = None

    def start(self):
        self._next_due = self.clock() + self.interval

    def delay(self):
        """Seconds to wait after the cycle that just finished."""
        now = self.clock()
        if self.mode == "fixed-rate":
            if self._next_due is None:
                self._next_due = now + self.interval
            while self._next_due <= now:
                self._next_due += self.interval
            due = self._next_due
            self._next_due += self.interval
            return due - now
        return self.interval


class FleetMonitor:

    def __init__(self, config, ec2_client=None, discover=None, probe=None, render=None, clock=time.time):
        self.config = config
        self.clock = clock
        self._ec2_client = ec2_client
        self.discover = discover or self._discover
        self.probe = probe or partial(ssh_probe.probe_instance, config=config)
        self.render = render or partial(report.print_report, clear=True)
        self.history = EtaHistory(maxlen=config.eta_history_limit)
        self.previous_timesteps = {}
        self.cycle_count = 0
        self.stop_event = threading.Event()

    @property
    def ec2_client(self):
        if self._ec2_client is None:
            self._ec2_client = discovery.create_ec2_client(self.config)
        return self._ec2_client

    def _discover(self):
        return discovery.discover_instances(self.ec2_client, self.config.instance_type,
                                            tag_filters=self.config.tag_filters)

    def probe_and_parse(self, instance):
        """Runs in a worker thread. Returns an InstanceProbeResult, connection failures included."""
        try:
            raw = self.probe(instance)
        except NodeConnectionError as e:
            logger.warning(f"[monitor] {instance.name} unreachable: {e.message}")
            return InstanceProbeResult.unreachable(instance, self.clock(), e)
        return parse_probe(raw, self.config.total_steps_by_case)

    def collect(self, instances):
        """Fan out one task per node and wait for every one of them."""
        results = {}
        if not instances:
            return results
        workers = min(len(instances), self.config.max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe") as executor:
            futures = {executor.submit(self.probe_and_parse, instance): instance for instance in instances}
            for future in as_completed(futures):
                instance = futures[future]
                try:
                    results[instance.instance_id] = future.result()
                except Exception as e:
                    # a crashed worker must not cost the other rows of the table
                    logger.exception(f"[monitor] probe of {instance.name} crashed")
                    error = MonitorError(f"probe crashed: {e}", node=instance.name)
                    results[instance.instance_id] = InstanceProbeResult.unreachable(instance, self.clock(), error)
        return results

    def update_node(self, key, result):
        """Fold one node's result into the cross-cycle state and return its row for this cycle."""
        current = result.timestep
        previous = self.previous_timesteps.get(key)
        step_increase = None
        instant = None

        if current is not None:
            if previous is not None:
                step_increase = max(current.step - previous.step, 0)
            instant = instantaneous_eta(previous, current)
            if instant is not None:
                self.history.record(key, instant)
            self.history.observe(key, current)
            self.previous_timesteps[key] = current

        return NodeSnapshot(
            key=key,
            result=result,
            status=classify(result, step_increase, result.reachable and self.history.is_complete(key)),
            step_increase=step_increase,
            instant_eta=instant,
            median_eta=self.history.reported_median(key),
            eta_state=self.history.state(key),
        )

    def build_snapshot(self, instances, results):
        snapshot = CycleSnapshot(taken_at=self.clock())
        keys = node_keys(instances)
        for instance in instances:
            key = keys[instance.instance_id]
            snapshot.nodes[key] = self.update_node(key, results[instance.instance_id])
        return snapshot

    def run_cycle(self):
        """One full pass. Returns the rendered snapshot, or None when discovery failed and the cycle was skipped."""
        self.cycle_count += 1
        try:
            instances = self.discover()
        except DiscoveryError as e:
            logger.error(f"[monitor] cycle {self.cycle_count} skipped, discovery failed: {e.message}")
            return None

        logger.info(f"[monitor] cycle {self.cycle_count}: probing {len(instances)} instance(s) in parallel")
        results = self.collect(instances)
        snapshot = self.build_snapshot(instances, results)
        self.render(snapshot)
        return snapshot

    def stop(self, *_args):
        self.stop_event.set()

    def install_signal_handlers(self):
        signal.signal(signal.SIGINT, self.stop)
        signal.signal(signal.SIGTERM, self.stop)

    def run_forever(self, max_cycles=None):
        scheduler = CycleScheduler(self.config.interval_seconds, self.config.schedule_mode)
        scheduler.start()
        cycles = 0
        while not self.stop_event.is_set():
            self.run_cycle()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            wait = scheduler.delay()
            logger.info(f"[monitor] next update in {wait:.0f}s")
            self.stop_event.wait(wait)
        logger.info("[monitor] monitoring stopped")
        return cycles
