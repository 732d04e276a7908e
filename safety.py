import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError

from auth import clean_text, get_current_user, login_required
from database import REPORT_TYPES, BlockedUser, EmergencyRequest, Report, User, db, isoformat

logger = logging.getLogger(__name__)

safety_bp = Blueprint('safety', __name__, url_prefix='/api')


def report_json(report):
    return {
        'id': report.id,
        'reporter_id': report.reporter_id,
        'reported_user_id': report.reported_user_id,
        'reported_emergency_id': report.reported_emergency_id,
        'report_type': report.report_type,
        'description': report.description,
        'status': report.status,
        'admin_notes': report.admin_notes,
        'reviewed_by': report.reviewed_by,
        'reviewed_at': isoformat(report.reviewed_at),
        'created_at': isoformat(report.created_at),
    }


def blocked_json(block):
    return {
        'id': block.id,
        'blocked_id': block.blocked_id,
        'reason': block.reason,
        'created_at': isoformat(block.created_at),
    }


@safety_bp.route('/reports', methods=['POST'])
@login_required
def create_report():
    data = request.get_json(silent=True) or {}

    report_type = data.get('report_type')
    if report_type not in REPORT_TYPES:
        return jsonify({'error': f"report_type must be one of {', '.join(REPORT_TYPES)}"}), 400

    reported_user_id = data.get('reported_user_id') or None
    reported_emergency_id = data.get('reported_emergency_id') or None
    if not reported_user_id and not reported_emergency_id:
        return jsonify({'error': 'A reported user or emergency request is required'}), 400
    if reported_user_id and not db.session.get(User, reported_user_id):
        return jsonify({'error': 'Reported user not found'}), 404
    if reported_emergency_id and not db.session.get(EmergencyRequest, reported_emergency_id):
        return jsonify({'error': 'Reported emergency request not found'}), 404

    report = Report(
        reporter_id=get_current_user().id,
        reported_user_id=reported_user_id,
        reported_emergency_id=reported_emergency_id,
        report_type=report_type,
        description=clean_text(data.get('description')) or None,
        status='pending',
    )
    db.session.add(report)
    db.session.commit()

    logger.info(f"Report {report.id} filed ({report_type})")
    return jsonify({'message': 'Report submitted', 'report': report_json(report)}), 201


@safety_bp.route('/reports/mine', methods=['GET'])
@login_required
def my_reports():
    reports = (
        Report.query.filter_by(reporter_id=get_current_user().id)
        .order_by(Report.created_at.desc())
        .all()
    )
    return jsonify([report_json(r) for r in reports]), 200


@safety_bp.route('/blocked-users', methods=['GET'])
@login_required
def list_blocked():
    blocks = (
        BlockedUser.query.filter_by(blocker_id=get_current_user().id)
        .order_by(BlockedUser.created_at.desc())
        .all()
    )
    return jsonify([blocked_json(b) for b in blocks]), 200


@safety_bp.route('/blocked-users', methods=['POST'])
@login_required
def block_user():
    user = get_current_user()
    data = request.get_json(silent=True) or {}

    blocked_id = data.get('blocked_id')
    if not blocked_id:
        return jsonify({'error': 'blocked_id is required'}), 400
    if blocked_id == user.id:
        return jsonify({'error': 'You cannot block yourself'}), 400
    if not db.session.get(User, blocked_id):
        return jsonify({'error': 'User not found'}), 404

    block = BlockedUser(blocker_id=user.id, blocked_id=blocked_id, reason=clean_text(data.get('reason')) or None)
    db.session.add(block)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'User already blocked'}), 409

    return jsonify({'message': 'User blocked', 'block': blocked_json(block)}), 201


@safety_bp.route('/blocked-users/<blocked_id>', methods=['DELETE'])
@login_required
def unblock_user(blocked_id):
    block = BlockedUser.query.filter_by(blocker_id=get_current_user().id, blocked_id=blocked_id).first()
    if not block:
        return jsonify({'error': 'User is not blocked'}), 404

    db.session.delete(block)
    db.session.commit()
    return jsonify({'message': 'User unblocked'}), 200
