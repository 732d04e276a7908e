import logging

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from auth import clean_text, get_current_user, role_required
from database import (
    BLOOD_TYPES,
    EMERGENCY_STATUSES,
    URGENCY_LEVELS,
    EmergencyRequest,
    Location,
    db,
    isoformat,
)
from messaging import clean_phone, is_local_phone
from notifier import notify_donors

logger = logging.getLogger(__name__)

emergency_bp = Blueprint('emergency', __name__, url_prefix='/api/emergency-requests')

# Allowed lifecycle moves; fulfilled and cancelled are final
TRANSITIONS = {
    'pending': ('active', 'fulfilled', 'cancelled'),
    'active': ('fulfilled', 'cancelled'),
    'fulfilled': (),
    'cancelled': (),
}


def emergency_json(req):
    return {
        'id': req.id,
        'requester_id': req.requester_id,
        'blood_type': req.blood_type,
        'units_needed': req.units_needed,
        'urgency': req.urgency,
        'status': req.status,
        'contact_phone': req.contact_phone,
        'hospital_name': req.hospital_name,
        'location_id': req.location_id,
        'latitude': req.latitude,
        'longitude': req.longitude,
        'notes': req.notes,
        'expires_at': isoformat(req.expires_at),
        'created_at': isoformat(req.created_at),
        'updated_at': isoformat(req.updated_at),
    }


def _parse_coordinate(value):
    try:
        return float(value) if value not in (None, '') else None
    except (TypeError, ValueError):
        return None


def _parse_units(value):
    if value in (None, ''):
        return 1
    try:
        units = int(value)
    except (TypeError, ValueError):
        return None
    return units if units >= 1 else None


@emergency_bp.route('', methods=['POST'])
@jwt_required(optional=True)
def create_emergency_request():
    data = request.get_json(silent=True) or {}

    blood_type = data.get('blood_type')
    if blood_type not in BLOOD_TYPES:
        return jsonify({'error': 'Please select the required blood type'}), 400

    if not is_local_phone(data.get('contact_phone')):
        return jsonify({'error': 'Please provide a valid 10-digit contact phone number'}), 400

    urgency = data.get('urgency') or 'urgent'
    if urgency not in URGENCY_LEVELS:
        return jsonify({'error': f"urgency must be one of {', '.join(URGENCY_LEVELS)}"}), 400

    units = _parse_units(data.get('units_needed'))
    if units is None:
        return jsonify({'error': 'units_needed must be a positive whole number'}), 400

    location_id = data.get('location_id') or None
    if location_id and not db.session.get(Location, location_id):
        return jsonify({'error': 'Unknown location'}), 400

    user = get_current_user()
    requester = user.profile if user else None

    emergency = EmergencyRequest(
        requester_id=requester.id if requester else None,
        blood_type=blood_type,
        units_needed=units,
        urgency=urgency,
        status='pending',
        contact_phone=clean_phone(data['contact_phone']),
        hospital_name=clean_text(data.get('hospital_name')) or None,
        location_id=location_id,
        latitude=_parse_coordinate(data.get('latitude')),
        longitude=_parse_coordinate(data.get('longitude')),
        notes=clean_text(data.get('notes')) or None,
    )
    db.session.add(emergency)
    db.session.commit()
    logger.info(f"Emergency request {emergency.id} created for {blood_type} ({urgency})")

    # The request stands even if donors could not be notified
    try:
        notification = notify_donors(
            emergency.id,
            emergency.blood_type,
            urgency=emergency.urgency,
            hospital_name=emergency.hospital_name,
            location_id=emergency.location_id,
            contact_phone=emergency.contact_phone,
        )
    except Exception as e:
        logger.exception(f"Failed to notify donors for request {emergency.id}")
        notification = {'success': False, 'error': str(e)}

    return jsonify({
        'message': 'Emergency request submitted',
        'request': emergency_json(emergency),
        'notification': notification,
    }), 201


@emergency_bp.route('', methods=['GET'])
def list_emergency_requests():
    status = request.args.get('status')
    if status and status not in EMERGENCY_STATUSES:
        return jsonify({'error': 'Invalid status'}), 400

    query = EmergencyRequest.query
    if status:
        query = query.filter_by(status=status)
    requests = query.order_by(EmergencyRequest.created_at.desc()).all()
    return jsonify([emergency_json(r) for r in requests]), 200


@emergency_bp.route('/<request_id>', methods=['GET'])
def get_emergency_request(request_id):
    emergency = db.get_or_404(EmergencyRequest, request_id)
    return jsonify(emergency_json(emergency)), 200


@emergency_bp.route('/<request_id>', methods=['PATCH'])
@role_required(['admin'])
def update_emergency_request(request_id):
    emergency = db.get_or_404(EmergencyRequest, request_id)
    data = request.get_json(silent=True) or {}

    status = data.get('status')
    if status not in EMERGENCY_STATUSES:
        return jsonify({'error': 'Invalid status'}), 400
    if status not in TRANSITIONS[emergency.status]:
        return jsonify({'error': f'Cannot move request from {emergency.status} to {status}'}), 409

    emergency.status = status
    db.session.commit()
    logger.info(f"Emergency request {emergency.id} marked as {status}")
    return jsonify({'message': f'Emergency request marked as {status}', 'request': emergency_json(emergency)}), 200
