import logging
import re

import phonenumbers
from flask import Blueprint, current_app, jsonify, request
from phonenumbers import NumberParseException, PhoneNumberFormat
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from auth import first_missing, role_required

logger = logging.getLogger(__name__)

messaging_bp = Blueprint('messaging', __name__, url_prefix='/api/messages')

CHANNELS = ('sms', 'whatsapp')
LOCAL_PHONE_DIGITS = 10


def clean_phone(raw):
    """Strip everything but digits from a user-entered phone number."""
    if not isinstance(raw, str):
        return ''
    return re.sub(r'\D', '', raw)


def is_local_phone(raw):
    return len(clean_phone(raw)) == LOCAL_PHONE_DIGITS


def format_phone(number, region='IN'):
    try:
        parsed_number = phonenumbers.parse(number, region)
        if not phonenumbers.is_valid_number(parsed_number):
            return None
        return phonenumbers.format_number(parsed_number, PhoneNumberFormat.E164)
    except NumberParseException:
        return None


class Messenger:
    """Thin Twilio REST client wrapper used for SMS and WhatsApp relays.

    Built from app config up front so it can be used from worker threads
    without an application context.
    """

    def __init__(self, account_sid=None, auth_token=None, from_number=None, region='IN'):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.region = region
        self._client = None

    @classmethod
    def from_config(cls, config):
        return cls(
            account_sid=config.get('TWILIO_ACCOUNT_SID'),
            auth_token=config.get('TWILIO_AUTH_TOKEN'),
            from_number=config.get('TWILIO_PHONE_NUMBER'),
            region=config.get('DEFAULT_PHONE_REGION', 'IN'),
        )

    @property
    def configured(self):
        return bool(self.account_sid and self.auth_token and self.from_number)

    @property
    def client(self):
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def send(self, to, body, channel='sms'):
        if not self.configured:
            logger.info(f"Twilio credentials not configured, skipping {channel} to {to}")
            return {'success': False, 'error': 'Twilio not configured'}

        formatted_to = format_phone(to, self.region)
        if not formatted_to:
            return {'success': False, 'error': f'Invalid phone number: {to}'}

        from_number = self.from_number
        if channel == 'whatsapp':
            from_number = f'whatsapp:{from_number}'
            formatted_to = f'whatsapp:{formatted_to}'

        try:
            message = self.client.messages.create(body=body, from_=from_number, to=formatted_to)
        except TwilioException as e:
            logger.error(f"Twilio error sending to {formatted_to}: {e}")
            return {'success': False, 'error': str(e)}

        logger.info(f"Message sent to {formatted_to} via {channel}, SID: {message.sid}")
        return {'success': True, 'sid': message.sid, 'channel': channel, 'to': formatted_to}


def get_messenger():
    return current_app.extensions['messenger']


@messaging_bp.route('', methods=['POST'])
@role_required(['admin'])
def send_direct_message():
    data = request.get_json(silent=True) or {}
    to = data.get('to')
    message = data.get('message')
    channel = data.get('channel', 'sms')

    if first_missing(data, ['to', 'message']):
        return jsonify({'success': False, 'error': "Missing required fields: 'to' and 'message'"}), 400
    if channel not in CHANNELS:
        return jsonify({'success': False, 'error': f'Unknown channel: {channel}'}), 400

    result = get_messenger().send(to, message, channel)
    if not result['success']:
        return jsonify(result), 502
    return jsonify(result), 200
