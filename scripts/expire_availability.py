"""Revert donor availability whose expiry has passed.

Meant to run from cron every few minutes, e.g.::

    */5 * * * * cd /srv/lifeline && python scripts/expire_availability.py
"""
import os
import sys

# ensure the project root is on sys.path so "from app import create_app" works
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app
from availability import expire_lapsed_windows

app = create_app()

with app.app_context():
    reverted = expire_lapsed_windows()
    print(f"{reverted} donor(s) reverted")
