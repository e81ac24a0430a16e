# discovery.py
# EC2 inventory lookups. The monitor only needs id, Name tag and the two addresses of every running node of the
# simulation instance type.

import logging

import boto3
import botocore.exceptions

from ec2_fleet_monitor.errors import DiscoveryError
from ec2_fleet_monitor.models import InstanceRecord


logger = logging.getLogger(__name__)


def create_ec2_client(config):
    # Explicit keys from .env when present, otherwise boto3 falls back to its default credential chain
    session = boto3.Session(
        aws_access_key_id=config.aws_access_key_id,
        aws_secret_access_key=config.aws_secret_access_key,
        region_name=config.region_name,
    )
    return session.client("ec2")


def build_filters(instance_type=None, states=("running",), tag_filters=()):
    filters = []
    if instance_type:
        filters.append({"Name": "instance-type", "Values": [instance_type]})
    if states:
        filters.append({"Name": "instance-state-name", "Values": list(states)})
    for key, value in tag_filters:
        filters.append({"Name": f"tag:{key}", "Values": [value]})
    return filters


def _name_tag(instance):
    for tag in instance.get("Tags", []):
        if tag.get("Key") == "Name" and tag.get("Value"):
            return tag["Value"]
    return None


def _to_record(instance):
    instance_id = instance.get("InstanceId", "unknown")
    return InstanceRecord(
        instance_id=instance_id,
        name=_name_tag(instance) or instance_id,
        public_ip=instance.get("PublicIpAddress"),
        private_ip=instance.get("PrivateIpAddress"),
        instance_type=instance.get("InstanceType"),
    )


def describe(ec2_client, filters):
    """All instances matching filters across every page of describe_instances."""
    records = []
    try:
        paginator = ec2_client.get_paginator("describe_instances")
        for page in paginator.paginate(Filters=filters):
            for reservation in page.get("Reservations", []):
                for instance in reservation.get("Instances", []):
                    records.append(_to_record(instance))
    except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
        raise DiscoveryError(f"describe_instances failed: {e}") from e
    return records


def discover_instances(ec2_client, instance_type, states=("running",), tag_filters=()):
    filters = build_filters(instance_type, states, tag_filters)
    records = describe(ec2_client, filters)
    logger.info(f"[discovery] {len(records)} {instance_type} instance(s) in state {'/'.join(states)}")
    return records


def find_instance_by_name(ec2_client, name, states=("running",)):
    """First running instance whose Name tag is exactly name, or None."""
    filters = build_filters(states=states, tag_filters=(("Name", name),))
    records = describe(ec2_client, filters)
    if len(records) > 1:
        logger.warning(f"[discovery] {len(records)} running instances are named {name}, using {records[0].instance_id}")
    return records[0] if records else None
