from datetime import date
from urllib.parse import quote

LIVES_PER_DONATION = 3

# Highest first; a donor holds the first badge whose threshold they meet.
BADGES = [
    {'level': 'platinum', 'label': 'Platinum Hero', 'min_donations': 25},
    {'level': 'gold', 'label': 'Gold Champion', 'min_donations': 10},
    {'level': 'silver', 'label': 'Silver Guardian', 'min_donations': 5},
    {'level': 'bronze', 'label': 'Bronze Warrior', 'min_donations': 1},
    {'level': 'new', 'label': 'New Donor', 'min_donations': 0},
]


def get_badge(total_donations):
    for badge in BADGES:
        if total_donations >= badge['min_donations']:
            return badge
    return BADGES[-1]


def next_badge(total_donations):
    """Return the next badge to earn with donations still needed, or None at the top."""
    upcoming = [b for b in BADGES if b['min_donations'] > total_donations]
    if not upcoming:
        return None
    badge = upcoming[-1]
    return dict(badge, donations_needed=badge['min_donations'] - total_donations)


def lives_impacted(total_donations):
    return total_donations * LIVES_PER_DONATION


def eligibility_countdown(next_eligible_date, recovery_days, today=None):
    if not next_eligible_date:
        return None
    today = today or date.today()
    days_remaining = (next_eligible_date - today).days
    remaining = max(0, days_remaining)
    return {
        'days_remaining': remaining,
        'is_eligible': days_remaining <= 0,
        'eligible_date': next_eligible_date.isoformat(),
        'progress': min(100.0, (recovery_days - remaining) / recovery_days * 100),
    }


def share_text(total_donations):
    badge = get_badge(total_donations)
    return (
        f"🩸 I'm a {badge['label']} blood donor with LifeLine! "
        f"I've donated {total_donations} time(s) and helped save up to {lives_impacted(total_donations)} lives. "
        "Join me in making a difference! #BloodDonation #LifeLine #SaveLives"
    )


def share_urls(text, url):
    encoded_text = quote(text, safe='')
    encoded_url = quote(url, safe='')
    return {
        'facebook': f"https://www.facebook.com/sharer/sharer.php?u={encoded_url}&quote={encoded_text}",
        'twitter': f"https://twitter.com/intent/tweet?text={encoded_text}&url={encoded_url}",
        'linkedin': f"https://www.linkedin.com/sharing/share-offsite/?url={encoded_url}",
    }


def badge_summary(donor, app_url, recovery_days, today=None):
    total = donor.total_donations or 0
    text = share_text(total)
    return {
        'badge': get_badge(total),
        'next_badge': next_badge(total),
        'total_donations': total,
        'lives_impacted': lives_impacted(total),
        'eligibility': eligibility_countdown(donor.next_eligible_date, recovery_days, today),
        'share_text': text,
        'share_urls': share_urls(text, app_url),
    }
