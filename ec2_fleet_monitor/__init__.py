"""
ec2_fleet_monitor

Watches a fleet of EC2 simulation nodes: finds them with boto3, pulls job progress over SSH (paramiko), keeps a
per node ETA history and prints a refreshed summary table every few minutes.
"""

__version__ = "0.3.0"
