import sys
import os

# Absolute path to the repo root so the tests import ec2_fleet_monitor from the working tree even without an
# editable install
ROOT = os.path.dirname(os.path.abspath(__file__))

if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
