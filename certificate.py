from io import BytesIO

from PIL import Image, ImageDraw, ImageFont

from badges import get_badge, lives_impacted

WIDTH, HEIGHT = 1200, 850

# Border / accent colours per badge level
BADGE_COLORS = {
    'platinum': (148, 163, 184),
    'gold': (245, 158, 11),
    'silver': (156, 163, 175),
    'bronze': (234, 88, 12),
    'new': (220, 38, 38),
}
TEXT_COLOR = (31, 41, 55)
MUTED_COLOR = (107, 114, 128)
BACKGROUND = (255, 255, 255)


def member_id(donor_id):
    return 'LK' + donor_id.replace('-', '')[:6].upper()


def _font(size):
    return ImageFont.load_default(size=size)


def _centered(draw, y, text, font, fill):
    left, _, right, _ = draw.textbbox((0, 0), text, font=font)
    draw.text(((WIDTH - (right - left)) / 2, y), text, font=font, fill=fill)


def render_certificate(donor_name, blood_type, total_donations, last_donation_date,
                       is_verified, donor_id):
    """Draw the donor's certificate of appreciation and return PNG bytes."""
    badge = get_badge(total_donations)
    accent = BADGE_COLORS[badge['level']]

    img = Image.new('RGB', (WIDTH, HEIGHT), BACKGROUND)
    draw = ImageDraw.Draw(img)
    draw.rectangle([20, 20, WIDTH - 20, HEIGHT - 20], outline=accent, width=12)
    draw.rectangle([44, 44, WIDTH - 44, HEIGHT - 44], outline=accent, width=2)

    _centered(draw, 90, 'LIFELINE', _font(36), accent)
    _centered(draw, 150, 'Certificate of Appreciation', _font(56), TEXT_COLOR)
    _centered(draw, 240, 'This certificate is proudly presented to', _font(26), MUTED_COLOR)
    _centered(draw, 290, donor_name, _font(64), TEXT_COLOR)

    draw.rounded_rectangle([WIDTH / 2 - 220, 390, WIDTH / 2 + 220, 450], radius=30, fill=accent)
    _centered(draw, 400, badge['label'], _font(34), BACKGROUND)

    stats = [
        ('Blood Type', blood_type),
        ('Donations', str(total_donations)),
        ('Lives Impacted', f"Up to {lives_impacted(total_donations)}"),
    ]
    column = WIDTH / len(stats)
    for i, (label, value) in enumerate(stats):
        value_font, label_font = _font(44), _font(22)
        vl, _, vr, _ = draw.textbbox((0, 0), value, font=value_font)
        ll, _, lr, _ = draw.textbbox((0, 0), label, font=label_font)
        x = column * i + column / 2
        draw.text((x - (vr - vl) / 2, 500), value, font=value_font, fill=TEXT_COLOR)
        draw.text((x - (lr - ll) / 2, 560), label, font=label_font, fill=MUTED_COLOR)

    footer = f"Member ID: {member_id(donor_id)}"
    if last_donation_date:
        footer += f"   |   Last donation: {last_donation_date.strftime('%b %d, %Y')}"
    if is_verified:
        footer += "   |   Verified Donor"
    _centered(draw, 680, footer, _font(22), MUTED_COLOR)
    _centered(draw, 730, 'Thank you for saving lives.', _font(26), accent)

    buffer = BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()
