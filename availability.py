"""Donor availability windows.

Donors set their status directly. A status may come with an expiry, in which
case a window remembers the status it replaced; once the window lapses the
expiry job puts that status back. Nothing else reverts a status, and request
handlers never run the expiry job themselves.
"""
import logging
from datetime import timedelta

from database import DonorAvailability, db, utcnow

logger = logging.getLogger(__name__)

MAX_EXPIRY_HOURS = 24


def open_windows(donor_id):
    return DonorAvailability.query.filter(
        DonorAvailability.donor_id == donor_id,
        DonorAvailability.reverted_at.is_(None),
        DonorAvailability.expires_at.isnot(None),
    ).all()


def set_availability(donor, status, expires_in_hours=None, now=None):
    now = now or utcnow()
    previous_status = donor.status

    # A fresh choice supersedes any window still pending
    for window in open_windows(donor.id):
        window.reverted_at = now

    donor.status = status
    window = None
    if expires_in_hours and expires_in_hours > 0:
        window = DonorAvailability(
            donor_id=donor.id,
            status=status,
            previous_status=previous_status,
            expires_at=now + timedelta(hours=expires_in_hours),
        )
        db.session.add(window)

    db.session.commit()
    return window


def expire_lapsed_windows(now=None):
    """Restore the previous status of every donor whose window has lapsed.

    Returns the number of donors whose status changed.
    """
    now = now or utcnow()
    lapsed = (
        DonorAvailability.query.filter(
            DonorAvailability.expires_at <= now,
            DonorAvailability.reverted_at.is_(None),
        )
        .order_by(DonorAvailability.expires_at)
        .all()
    )

    reverted = 0
    for window in lapsed:
        donor = window.donor
        if donor.status == window.status:
            donor.status = window.previous_status
            reverted += 1
        window.reverted_at = now

    db.session.commit()
    logger.info(f"Expired {len(lapsed)} availability windows, {reverted} donors reverted")
    return reverted
