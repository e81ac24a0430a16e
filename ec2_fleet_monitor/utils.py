# utils.py
# Helpers shared by the monitor loop, the launcher and the cli.

import logging
import os
from collections import Counter


LOG_FORMAT = '%(asctime)s - %(threadName)s - %(message)s'


def setup_logging(level="INFO", log_file=None):
    """
    Route logging to stderr, or to log_file when given. The report owns stdout (it clears the screen every
    cycle) so log lines never go there.
    """
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        logging.basicConfig(filename=log_file, level=level, format=LOG_FORMAT, force=True)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT, force=True)

    # paramiko logs every transport negotiation at INFO
    logging.getLogger("paramiko").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)


def node_keys(instances):
    """
    Map each instance to the key used for its row and its ETA history. The key is the Name tag; names that
    occur more than once in the same discovery get the instance id appended so no row is lost.
    """
    counts = Counter(instance.name for instance in instances)
    keys = {}
    for instance in instances:
        if counts[instance.name] > 1:
            keys[instance.instance_id] = f"{instance.name} [{instance.instance_id}]"
        else:
            keys[instance.instance_id] = instance.name
    return keys
