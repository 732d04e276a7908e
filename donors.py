import logging
import math
from datetime import date, datetime, timedelta
from io import BytesIO

from flask import Blueprint, current_app, jsonify, request, send_file
from sqlalchemy import or_

from auth import get_current_user, login_required, role_required
from availability import MAX_EXPIRY_HOURS, set_availability
from badges import badge_summary
from certificate import render_certificate
from database import (
    AVAILABILITY_STATUSES,
    BLOOD_TYPES,
    REACHABLE_STATUSES,
    Donor,
    Location,
    Profile,
    db,
    isoformat,
)
from messaging import clean_phone, is_local_phone

logger = logging.getLogger(__name__)

donors_bp = Blueprint('donors', __name__, url_prefix='/api/donors')

EARTH_RADIUS_KM = 6371.0


def parse_date(value):
    """Parse a ``YYYY-MM-DD`` string, raising ValueError on bad input."""
    if not isinstance(value, str):
        raise ValueError(f"expected a date string, got {value!r}")
    return datetime.strptime(value, '%Y-%m-%d').date()


def parse_flag(value, default=False):
    if value is None:
        return default
    return str(value).lower() in ('1', 'true', 'yes')


def next_eligible_date(last_donation_date):
    if not last_donation_date:
        return None
    return last_donation_date + timedelta(days=current_app.config['DONATION_RECOVERY_DAYS'])


def distance_km(lat1, lon1, lat2, lon2):
    """Great-circle distance between two points (haversine)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def location_json(location):
    if not location:
        return None
    return {
        'id': location.id,
        'name': location.name,
        'level': location.level,
        'parent': {'id': location.parent.id, 'name': location.parent.name} if location.parent else None,
    }


def donor_json(donor):
    return {
        'id': donor.id,
        'profile_id': donor.profile_id,
        'blood_type': donor.blood_type,
        'status': donor.status,
        'is_verified': donor.is_verified,
        'verification_notes': donor.verification_notes,
        'total_donations': donor.total_donations,
        'last_donation_date': isoformat(donor.last_donation_date),
        'next_eligible_date': isoformat(donor.next_eligible_date),
        'donation_locked_until': isoformat(donor.donation_locked_until),
        'created_at': isoformat(donor.created_at),
        'updated_at': isoformat(donor.updated_at),
    }


def public_donor_json(donor):
    """Directory entry; never carries contact details."""
    profile = donor.profile
    return {
        'id': donor.id,
        'blood_type': donor.blood_type,
        'status': donor.status,
        'is_verified': donor.is_verified,
        'last_donation_date': isoformat(donor.last_donation_date),
        'profile': {
            'full_name': profile.full_name,
            'location_id': profile.location_id,
            'location': location_json(profile.location),
        },
    }


def admin_donor_json(donor):
    profile = donor.profile
    data = donor_json(donor)
    data['profile'] = {
        'id': profile.id,
        'user_id': profile.user_id,
        'full_name': profile.full_name,
        'phone': profile.phone,
        'phone_verified': bool(profile.phone_verified),
        'location': location_json(profile.location),
    }
    return data


def current_donor():
    profile = get_current_user().profile
    return profile.donor if profile else None


@donors_bp.route('', methods=['POST'])
@login_required
def register_donor():
    user = get_current_user()
    profile = user.profile
    data = request.get_json(silent=True) or {}

    if profile.donor:
        return jsonify({'error': 'Donor profile already exists'}), 409

    blood_type = data.get('blood_type')
    if blood_type not in BLOOD_TYPES:
        return jsonify({'error': 'A valid blood_type is required'}), 400

    if not is_local_phone(data.get('phone')):
        return jsonify({'error': 'Enter your 10-digit mobile number'}), 400
    phone = clean_phone(data['phone'])

    location_id = data.get('location_id')
    if location_id and not db.session.get(Location, location_id):
        return jsonify({'error': 'Unknown location'}), 400

    last_donation = None
    if data.get('last_donation_date'):
        try:
            last_donation = parse_date(data['last_donation_date'])
        except ValueError:
            return jsonify({'error': 'last_donation_date must be YYYY-MM-DD'}), 400
        if last_donation > date.today():
            return jsonify({'error': 'last_donation_date cannot be in the future'}), 400

    if profile.phone != phone:
        profile.phone = phone
        profile.phone_verified = False
        profile.phone_verified_at = None
    if location_id:
        profile.location_id = location_id

    donor = Donor(
        profile_id=profile.id,
        blood_type=blood_type,
        status='available',
        is_verified=False,
        last_donation_date=last_donation,
        next_eligible_date=next_eligible_date(last_donation),
    )
    db.session.add(donor)
    if user.role != 'admin':
        user.role = 'donor'
    db.session.commit()

    logger.info(f"Donor {donor.id} registered with blood type {blood_type}")
    return jsonify({'message': 'Donor profile created successfully', 'donor': donor_json(donor)}), 201


@donors_bp.route('/me', methods=['GET'])
@login_required
def get_my_donor():
    donor = current_donor()
    if not donor:
        return jsonify({'error': 'No donor record found'}), 404
    return jsonify(donor_json(donor)), 200


@donors_bp.route('/me', methods=['PUT'])
@login_required
def update_my_donor():
    donor = current_donor()
    if not donor:
        return jsonify({'error': 'No donor record found'}), 404
    data = request.get_json(silent=True) or {}

    if 'blood_type' in data:
        if data['blood_type'] not in BLOOD_TYPES:
            return jsonify({'error': 'Invalid blood_type'}), 400
        donor.blood_type = data['blood_type']

    if 'last_donation_date' in data:
        if data['last_donation_date']:
            try:
                last_donation = parse_date(data['last_donation_date'])
            except ValueError:
                return jsonify({'error': 'last_donation_date must be YYYY-MM-DD'}), 400
        else:
            last_donation = None
        donor.last_donation_date = last_donation
        donor.next_eligible_date = next_eligible_date(last_donation)

    db.session.commit()
    return jsonify({'message': 'Donor updated successfully', 'donor': donor_json(donor)}), 200


@donors_bp.route('/me/availability', methods=['PUT'])
@login_required
def update_my_availability():
    donor = current_donor()
    if not donor:
        return jsonify({'error': 'No donor record found'}), 404
    data = request.get_json(silent=True) or {}

    status = data.get('status')
    if status not in AVAILABILITY_STATUSES:
        return jsonify({'error': f"status must be one of {', '.join(AVAILABILITY_STATUSES)}"}), 400

    hours = data.get('expires_in_hours') or 0
    if not isinstance(hours, int) or isinstance(hours, bool) or not 0 <= hours <= MAX_EXPIRY_HOURS:
        return jsonify({'error': f'expires_in_hours must be a whole number from 0 to {MAX_EXPIRY_HOURS}'}), 400

    window = set_availability(donor, status, hours)
    return jsonify({
        'status': donor.status,
        'expires_at': isoformat(window.expires_at) if window else None,
    }), 200


@donors_bp.route('/me/badge', methods=['GET'])
@login_required
def get_my_badge():
    donor = current_donor()
    if not donor:
        return jsonify({'error': 'No donor record found'}), 404
    config = current_app.config
    return jsonify(badge_summary(donor, config['APP_URL'], config['DONATION_RECOVERY_DAYS'])), 200


@donors_bp.route('/me/certificate.png', methods=['GET'])
@login_required
def get_my_certificate():
    donor = current_donor()
    if not donor:
        return jsonify({'error': 'No donor record found'}), 404

    name = donor.profile.full_name
    png = render_certificate(
        donor_name=name,
        blood_type=donor.blood_type,
        total_donations=donor.total_donations,
        last_donation_date=donor.last_donation_date,
        is_verified=donor.is_verified,
        donor_id=donor.id,
    )
    filename = f"lifeline-certificate-{'-'.join(name.lower().split())}.png"
    return send_file(BytesIO(png), mimetype='image/png', as_attachment=True, download_name=filename)


def _public_query(blood_type=None):
    query = Donor.query.join(Profile, Donor.profile_id == Profile.id).filter(Donor.is_verified.is_(True))
    if blood_type:
        query = query.filter(Donor.blood_type == blood_type)
    return query


@donors_bp.route('/public', methods=['GET'])
def public_directory():
    blood_type = request.args.get('blood_type')
    location_id = request.args.get('location_id')
    only_available = parse_flag(request.args.get('only_available'))

    if blood_type and blood_type not in BLOOD_TYPES:
        return jsonify({'error': 'Invalid blood_type'}), 400

    query = _public_query(blood_type)
    if location_id:
        # A district matches donors registered in any of its tehsils too
        children = db.session.query(Location.id).filter(Location.parent_id == location_id)
        query = query.filter(or_(Profile.location_id == location_id, Profile.location_id.in_(children)))
    if only_available:
        query = query.filter(Donor.status.in_(REACHABLE_STATUSES))

    donors = query.order_by(Donor.status.asc()).all()
    return jsonify([public_donor_json(d) for d in donors]), 200


@donors_bp.route('/public/count', methods=['GET'])
def public_donor_count():
    blood_type = request.args.get('blood_type')
    if blood_type and blood_type not in BLOOD_TYPES:
        return jsonify({'error': 'Invalid blood_type'}), 400
    return jsonify({'count': _public_query(blood_type).count()}), 200


@donors_bp.route('/nearby', methods=['GET'])
@login_required
def nearby_donors():
    blood_type = request.args.get('blood_type')
    lat = request.args.get('lat', type=float)
    lon = request.args.get('lon', type=float)
    max_km = request.args.get('max_distance_km', current_app.config['NEARBY_DEFAULT_KM'], type=float)

    if blood_type not in BLOOD_TYPES:
        return jsonify({'error': 'A valid blood_type is required'}), 400
    if lat is None or lon is None:
        return jsonify({'error': 'lat and lon are required'}), 400

    candidates = (
        _public_query(blood_type)
        .filter(
            Donor.status.in_(REACHABLE_STATUSES),
            Profile.latitude.isnot(None),
            Profile.longitude.isnot(None),
        )
        .all()
    )

    results = []
    for donor in candidates:
        km = distance_km(lat, lon, donor.profile.latitude, donor.profile.longitude)
        if km <= max_km:
            entry = public_donor_json(donor)
            entry['distance_km'] = round(km, 2)
            results.append(entry)

    results.sort(key=lambda entry: entry['distance_km'])
    return jsonify(results), 200


@donors_bp.route('', methods=['GET'])
@role_required(['admin'])
def list_donors():
    blood_type = request.args.get('blood_type')
    status = request.args.get('status')
    verified_only = parse_flag(request.args.get('verified_only'), default=True)

    query = Donor.query.join(Profile, Donor.profile_id == Profile.id)
    if blood_type:
        query = query.filter(Donor.blood_type == blood_type)
    if status:
        query = query.filter(Donor.status == status)
    if verified_only:
        query = query.filter(Donor.is_verified.is_(True))

    donors = query.order_by(Donor.updated_at.desc()).all()
    return jsonify([admin_donor_json(d) for d in donors]), 200
