import sys

from ec2_fleet_monitor.cli import main


if __name__ == "__main__":
    sys.exit(main())
