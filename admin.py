import logging
from datetime import date, timedelta

from flask import Blueprint, current_app, jsonify, request

from auth import clean_text, get_current_user, role_required
from database import (
    LOCATION_LEVELS,
    REPORT_STATUSES,
    Donor,
    EmergencyRequest,
    Location,
    Notification,
    Report,
    db,
    utcnow,
)
from donors import admin_donor_json
from profiles import location_row
from safety import report_json

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


def _notify_donor(donor, type_, title, message):
    db.session.add(Notification(
        user_id=donor.profile.user_id,
        type=type_,
        title=title,
        message=message,
        related_id=donor.id,
    ))


@admin_bp.route('/stats', methods=['GET'])
@role_required(['admin'])
def get_stats():
    total_donors = Donor.query.count()
    pending_verification = Donor.query.filter(Donor.is_verified.is_(False)).count()
    total_emergencies = EmergencyRequest.query.count()
    active_emergencies = EmergencyRequest.query.filter(
        EmergencyRequest.status.in_(('pending', 'active'))
    ).count()

    blood_types = (
        db.session.query(Donor.blood_type, db.func.count(Donor.id))
        .filter(Donor.is_verified.is_(True))
        .group_by(Donor.blood_type)
        .all()
    )

    return jsonify({
        'totalDonors': total_donors,
        'pendingVerification': pending_verification,
        'totalEmergencies': total_emergencies,
        'activeEmergencies': active_emergencies,
        'bloodTypeDistribution': [{'blood_type': bt, 'count': count} for bt, count in blood_types],
    }), 200


@admin_bp.route('/donors/<donor_id>/verify', methods=['POST'])
@role_required(['admin'])
def verify_donor(donor_id):
    donor = db.get_or_404(Donor, donor_id)
    data = request.get_json(silent=True) or {}

    verified = data.get('verified', True)
    if not isinstance(verified, bool):
        return jsonify({'error': 'verified must be true or false'}), 400

    newly_verified = verified and not donor.is_verified
    donor.is_verified = verified
    if 'notes' in data:
        donor.verification_notes = clean_text(data['notes']) or None

    if newly_verified:
        _notify_donor(donor, 'verification', 'You are a verified donor',
                      'Your donor profile has been verified. You will now receive emergency alerts.')
    db.session.commit()

    logger.info(f"Donor {donor.id} verification set to {verified} by {get_current_user().id}")
    return jsonify({'message': 'Donor updated successfully', 'donor': admin_donor_json(donor)}), 200


@admin_bp.route('/donors/<donor_id>/donations', methods=['POST'])
@role_required(['admin'])
def record_donation(donor_id):
    donor = db.get_or_404(Donor, donor_id)
    today = date.today()

    if donor.donation_locked_until and donor.donation_locked_until > today:
        return jsonify({
            'error': f'Donor cannot donate again until {donor.donation_locked_until.isoformat()}'
        }), 409

    recovered_on = today + timedelta(days=current_app.config['DONATION_RECOVERY_DAYS'])
    donor.total_donations = (donor.total_donations or 0) + 1
    donor.last_donation_date = today
    donor.next_eligible_date = recovered_on
    donor.donation_locked_until = recovered_on

    _notify_donor(donor, 'donation_recorded', 'Thank you for donating!',
                  f'Donation #{donor.total_donations} recorded. You can donate again from {recovered_on.isoformat()}.')
    db.session.commit()

    logger.info(f"Recorded donation {donor.total_donations} for donor {donor.id}")
    return jsonify({'message': 'Donation recorded', 'donor': admin_donor_json(donor)}), 200


@admin_bp.route('/reports', methods=['GET'])
@role_required(['admin'])
def list_reports():
    status = request.args.get('status')
    if status and status not in REPORT_STATUSES:
        return jsonify({'error': 'Invalid status'}), 400

    query = Report.query
    if status:
        query = query.filter_by(status=status)
    reports = query.order_by(Report.created_at.desc()).all()
    return jsonify([report_json(r) for r in reports]), 200


@admin_bp.route('/reports/<report_id>', methods=['PATCH'])
@role_required(['admin'])
def review_report(report_id):
    report = db.get_or_404(Report, report_id)
    data = request.get_json(silent=True) or {}

    status = data.get('status')
    if status not in REPORT_STATUSES:
        return jsonify({'error': f"status must be one of {', '.join(REPORT_STATUSES)}"}), 400

    report.status = status
    if 'admin_notes' in data:
        report.admin_notes = clean_text(data['admin_notes']) or None
    report.reviewed_by = get_current_user().id
    report.reviewed_at = utcnow()
    db.session.commit()

    return jsonify({'message': 'Report updated', 'report': report_json(report)}), 200


@admin_bp.route('/locations', methods=['POST'])
@role_required(['admin'])
def create_location():
    data = request.get_json(silent=True) or {}

    name = clean_text(data.get('name'))
    if not name:
        return jsonify({'error': 'name is required'}), 400
    level = data.get('level')
    if level not in LOCATION_LEVELS:
        return jsonify({'error': f"level must be one of {', '.join(LOCATION_LEVELS)}"}), 400

    parent_id = data.get('parent_id') or None
    if parent_id and not db.session.get(Location, parent_id):
        return jsonify({'error': 'Unknown parent location'}), 400

    location = Location(name=name, level=level, parent_id=parent_id)
    db.session.add(location)
    db.session.commit()
    return jsonify(location_row(location)), 201
