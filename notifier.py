"""Emergency notification fan-out.

Given a freshly created emergency request, find every verified donor of the
exact blood type who is currently reachable, write one in-app notification per
donor and relay an SMS to each donor with a phone number. SMS delivery is best
effort: all sends go out concurrently and individual failures are only logged.
"""
import logging
from concurrent.futures import ThreadPoolExecutor

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from auth import clean_text, first_missing, login_required
from database import REACHABLE_STATUSES, Donor, Notification, Profile, db
from messaging import get_messenger

logger = logging.getLogger(__name__)

notify_bp = Blueprint('notify', __name__, url_prefix='/api')

NOTIFICATION_TYPE = 'emergency_request'


class DispatchError(Exception):
    """Raised when notification rows could not be written."""


def find_matching_donors(blood_type):
    # Exact match only: an O+ request never reaches O- donors.
    return (
        Donor.query.join(Profile, Donor.profile_id == Profile.id)
        .filter(
            Donor.blood_type == blood_type,
            Donor.is_verified.is_(True),
            Donor.status.in_(REACHABLE_STATUSES),
        )
        .all()
    )


def _at_hospital(hospital_name):
    return f" at {hospital_name}" if hospital_name else ""


def notification_title(urgency):
    return f"🚨 {urgency.upper()} Blood Request"


def notification_message(blood_type, hospital_name=None):
    return f"{blood_type} blood needed{_at_hospital(hospital_name)}. Can you help?"


def sms_body(blood_type, urgency, hospital_name=None, contact_phone=None):
    contact = f"Contact: {contact_phone}" if contact_phone else ""
    return (
        f"🚨 LIFELINE - {urgency.upper()} ALERT\n\n"
        f"{blood_type} blood urgently needed{_at_hospital(hospital_name)}.\n\n"
        f"{contact}\n\n"
        "Please respond ASAP if available."
    )


def _send_one(messenger, phone, body):
    try:
        return messenger.send(phone, body, 'sms')
    except Exception as e:
        logger.exception(f"SMS to {phone} failed")
        return {'success': False, 'error': str(e)}


def send_sms_batch(messenger, phones, body):
    """Send ``body`` to every phone at once; returns how many sends succeeded."""
    if not phones:
        return 0
    with ThreadPoolExecutor(max_workers=len(phones)) as pool:
        results = list(pool.map(lambda phone: _send_one(messenger, phone, body), phones))
    return sum(1 for result in results if result.get('success'))


def notify_donors(emergency_request_id, blood_type, urgency=None, hospital_name=None,
                  location_id=None, contact_phone=None, messenger=None):
    urgency = urgency or 'urgent'
    if location_id:
        # TODO: proximity filtering; matching is by blood type only and location_id is not consulted
        logger.debug(f"location_id {location_id} ignored when matching donors for {emergency_request_id}")

    donors = find_matching_donors(blood_type)
    if not donors:
        logger.info(f"No matching donors found for blood type: {blood_type}")
        return {'success': True, 'notified': 0, 'smsSent': 0, 'message': 'No matching donors found'}

    notifications = [
        Notification(
            user_id=donor.profile.user_id,
            type=NOTIFICATION_TYPE,
            title=notification_title(urgency),
            message=notification_message(blood_type, hospital_name),
            related_id=emergency_request_id,
            is_read=False,
        )
        for donor in donors
    ]
    phones = [donor.profile.phone for donor in donors if donor.profile.phone]

    try:
        db.session.add_all(notifications)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DispatchError(f"Failed to create notifications: {e}") from e

    messenger = messenger or get_messenger()
    sms_sent = send_sms_batch(messenger, phones, sms_body(blood_type, urgency, hospital_name, contact_phone))

    logger.info(f"Notified {len(donors)} donors, {sms_sent} SMS sent for request {emergency_request_id}")
    return {
        'success': True,
        'notified': len(donors),
        'smsSent': sms_sent,
        'message': f'Notified {len(donors)} donors ({sms_sent} via SMS)',
    }


@notify_bp.route('/notify-donors', methods=['POST'])
@login_required
def notify_donors_endpoint():
    data = request.get_json(silent=True) or {}

    if first_missing(data, ['emergency_request_id', 'blood_type']):
        return jsonify({
            'success': False,
            'error': 'Missing required fields: emergency_request_id and blood_type',
        }), 400

    try:
        result = notify_donors(
            data['emergency_request_id'],
            data['blood_type'],
            urgency=clean_text(data.get('urgency')) or None,
            hospital_name=clean_text(data.get('hospital_name')) or None,
            location_id=data.get('location_id'),
            contact_phone=clean_text(data.get('contact_phone')) or None,
        )
    except DispatchError as e:
        logger.error(f"Error in notify-donors: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500

    return jsonify(result), 200
