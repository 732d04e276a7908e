from flask import Blueprint, jsonify, request

from auth import clean_text, get_current_user, login_required
from database import LOCATION_LEVELS, Location, db, isoformat, utcnow
from messaging import clean_phone, is_local_phone

profiles_bp = Blueprint('profiles', __name__, url_prefix='/api')


def profile_json(profile):
    return {
        'id': profile.id,
        'user_id': profile.user_id,
        'full_name': profile.full_name,
        'phone': profile.phone,
        'phone_verified': bool(profile.phone_verified),
        'phone_verified_at': isoformat(profile.phone_verified_at),
        'location_id': profile.location_id,
        'latitude': profile.latitude,
        'longitude': profile.longitude,
        'location_updated_at': isoformat(profile.location_updated_at),
        'avatar_url': profile.avatar_url,
        'is_donor': profile.donor is not None,
    }


def location_row(location):
    return {
        'id': location.id,
        'name': location.name,
        'level': location.level,
        'parent_id': location.parent_id,
        'created_at': isoformat(location.created_at),
    }


@profiles_bp.route('/profile', methods=['GET'])
@login_required
def get_profile():
    return jsonify(profile_json(get_current_user().profile)), 200


@profiles_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    profile = get_current_user().profile
    data = request.get_json(silent=True) or {}

    if 'full_name' in data:
        full_name = clean_text(data['full_name'])
        if not full_name:
            return jsonify({'error': 'full_name cannot be empty'}), 400
        profile.full_name = full_name

    if 'phone' in data:
        if not is_local_phone(data['phone']):
            return jsonify({'error': 'Enter your 10-digit mobile number'}), 400
        phone = clean_phone(data['phone'])
        if phone != profile.phone:
            # a new number must be verified again
            profile.phone = phone
            profile.phone_verified = False
            profile.phone_verified_at = None

    if 'location_id' in data:
        location_id = data['location_id']
        if location_id and not db.session.get(Location, location_id):
            return jsonify({'error': 'Unknown location'}), 400
        profile.location_id = location_id or None

    if 'avatar_url' in data:
        profile.avatar_url = clean_text(data['avatar_url']) or None

    db.session.commit()
    return jsonify({'message': 'Profile updated successfully', 'profile': profile_json(profile)}), 200


@profiles_bp.route('/profile/location', methods=['PUT'])
@login_required
def update_profile_location():
    data = request.get_json(silent=True) or {}
    try:
        latitude = float(data['latitude'])
        longitude = float(data['longitude'])
    except (KeyError, TypeError, ValueError):
        return jsonify({'error': 'latitude and longitude are required numbers'}), 400

    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        return jsonify({'error': 'Coordinates out of range'}), 400

    profile = get_current_user().profile
    profile.latitude = latitude
    profile.longitude = longitude
    profile.location_updated_at = utcnow()
    db.session.commit()
    return jsonify({'message': 'Location updated', 'profile': profile_json(profile)}), 200


@profiles_bp.route('/locations', methods=['GET'])
def list_locations():
    level = request.args.get('level')
    parent_id = request.args.get('parent_id')

    if level and level not in LOCATION_LEVELS:
        return jsonify({'error': 'Invalid level'}), 400

    query = Location.query
    if level:
        query = query.filter_by(level=level)
    if parent_id:
        query = query.filter_by(parent_id=parent_id)

    return jsonify([location_row(loc) for loc in query.order_by(Location.name).all()]), 200


@profiles_bp.route('/locations/districts', methods=['GET'])
def list_districts():
    districts = Location.query.filter_by(level='district').order_by(Location.name).all()
    return jsonify([location_row(loc) for loc in districts]), 200


@profiles_bp.route('/locations/<district_id>/tehsils', methods=['GET'])
def list_tehsils(district_id):
    tehsils = (
        Location.query.filter_by(level='tehsil', parent_id=district_id)
        .order_by(Location.name)
        .all()
    )
    return jsonify([location_row(loc) for loc in tehsils]), 200
