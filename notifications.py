from flask import Blueprint, jsonify, request

from auth import get_current_user, login_required
from database import Notification, db, isoformat
from donors import parse_flag

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


def notification_json(notification):
    return {
        'id': notification.id,
        'type': notification.type,
        'title': notification.title,
        'message': notification.message,
        'related_id': notification.related_id,
        'is_read': notification.is_read,
        'created_at': isoformat(notification.created_at),
    }


@notifications_bp.route('', methods=['GET'])
@login_required
def list_notifications():
    query = Notification.query.filter_by(user_id=get_current_user().id)
    if parse_flag(request.args.get('unread_only')):
        query = query.filter_by(is_read=False)

    notifications = query.order_by(Notification.created_at.desc()).all()
    return jsonify([notification_json(n) for n in notifications]), 200


@notifications_bp.route('/<notification_id>/read', methods=['POST'])
@login_required
def mark_read(notification_id):
    notification = db.session.get(Notification, notification_id)
    # someone else's notification looks the same as a missing one
    if not notification or notification.user_id != get_current_user().id:
        return jsonify({'error': 'Notification not found'}), 404

    notification.is_read = True
    db.session.commit()
    return jsonify(notification_json(notification)), 200


@notifications_bp.route('/read-all', methods=['POST'])
@login_required
def mark_all_read():
    updated = (
        Notification.query.filter_by(user_id=get_current_user().id, is_read=False)
        .update({'is_read': True})
    )
    db.session.commit()
    return jsonify({'updated': updated}), 200
