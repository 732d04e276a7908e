from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from badges import (
    badge_summary,
    eligibility_countdown,
    get_badge,
    lives_impacted,
    next_badge,
    share_text,
    share_urls,
)
from certificate import member_id, render_certificate


@pytest.mark.parametrize('donations, level', [
    (0, 'new'),
    (1, 'bronze'),
    (4, 'bronze'),
    (5, 'silver'),
    (10, 'gold'),
    (24, 'gold'),
    (25, 'platinum'),
    (80, 'platinum'),
])
def test_badge_levels(donations, level):
    assert get_badge(donations)['level'] == level


def test_next_badge():
    assert next_badge(3) == {
        'level': 'silver', 'label': 'Silver Guardian', 'min_donations': 5, 'donations_needed': 2,
    }
    assert next_badge(12)['level'] == 'platinum'
    assert next_badge(25) is None


def test_lives_impacted():
    assert lives_impacted(0) == 0
    assert lives_impacted(7) == 21


def test_eligibility_countdown():
    today = date(2025, 3, 1)

    waiting = eligibility_countdown(today + timedelta(days=45), 90, today)
    assert waiting['days_remaining'] == 45
    assert waiting['is_eligible'] is False
    assert waiting['progress'] == 50.0

    ready = eligibility_countdown(today - timedelta(days=3), 90, today)
    assert ready['days_remaining'] == 0
    assert ready['is_eligible'] is True
    assert ready['progress'] == 100.0

    assert eligibility_countdown(None, 90, today) is None


def test_eligibility_countdown_uses_given_recovery_window():
    today = date(2025, 3, 1)

    countdown = eligibility_countdown(today + timedelta(days=14), 56, today)

    assert countdown['days_remaining'] == 14
    assert countdown['progress'] == 75.0


def test_share_links_are_encoded():
    text = share_text(5)
    assert 'Silver Guardian' in text
    assert 'up to 15 lives' in text

    urls = share_urls(text, 'https://lifeline.example/donate')
    assert urls['twitter'].startswith('https://twitter.com/intent/tweet?text=')
    assert 'https%3A%2F%2Flifeline.example%2Fdonate' in urls['linkedin']
    assert ' ' not in urls['facebook']


def test_badge_summary():
    donor = SimpleNamespace(total_donations=10, next_eligible_date=date(2025, 3, 11))

    summary = badge_summary(donor, 'https://lifeline.example', 90, today=date(2025, 3, 1))

    assert summary['badge']['label'] == 'Gold Champion'
    assert summary['next_badge']['donations_needed'] == 15
    assert summary['lives_impacted'] == 30
    assert summary['eligibility']['days_remaining'] == 10


def test_member_id():
    assert member_id('3f2a9c1e-77aa-4bcd-9e0f-123456789abc') == 'LK3F2A9C'


def test_render_certificate_returns_png():
    png = render_certificate(
        donor_name='Meera Nair',
        blood_type='B+',
        total_donations=6,
        last_donation_date=date(2025, 1, 15),
        is_verified=True,
        donor_id='3f2a9c1e-77aa-4bcd-9e0f-123456789abc',
    )
    assert png.startswith(b'\x89PNG\r\n\x1a\n')
