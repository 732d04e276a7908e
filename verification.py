"""Phone number verification.

A number moves through three states: ``phone`` (nothing sent yet), ``otp``
(a 6-digit code is on its way) and ``verified``. Codes are sent and checked by
an external provider (Twilio Verify); each attempt is tracked on a
``PhoneVerification`` row which is also the session handle given to the client.

Clients that already completed Firebase phone auth can instead hand over their
Firebase ID token, whose ``phone_number`` claim is trusted once the Admin SDK
has verified it.
"""
import logging
import re
from datetime import timedelta

import firebase_admin
import phonenumbers
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from flask import Blueprint, current_app, jsonify, request
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from auth import get_current_user, login_required
from database import PhoneVerification, User, db, utcnow
from messaging import clean_phone, format_phone, is_local_phone

logger = logging.getLogger(__name__)

verification_bp = Blueprint('verification', __name__, url_prefix='/api/verify-phone')

CODE_PATTERN = re.compile(r'^\d{6}$')


class VerificationError(Exception):
    def __init__(self, message, status=400):
        super().__init__(message)
        self.status = status


class TwilioVerifyProvider:
    def __init__(self, account_sid=None, auth_token=None, service_sid=None):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.service_sid = service_sid
        self._client = None

    @classmethod
    def from_config(cls, config):
        return cls(
            account_sid=config.get('TWILIO_ACCOUNT_SID'),
            auth_token=config.get('TWILIO_AUTH_TOKEN'),
            service_sid=config.get('TWILIO_VERIFY_SERVICE_SID'),
        )

    def _service(self):
        if not (self.account_sid and self.auth_token and self.service_sid):
            raise VerificationError('Phone verification is not configured', status=503)
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client.verify.v2.services(self.service_sid)

    def send_code(self, phone):
        try:
            verification = self._service().verifications.create(to=phone, channel='sms')
        except TwilioException as e:
            logger.error(f"Failed to send OTP to {phone}: {e}")
            raise VerificationError('Failed to send OTP', status=502) from e
        return verification.sid

    def check_code(self, phone, code):
        try:
            check = self._service().verification_checks.create(to=phone, code=code)
        except TwilioException as e:
            logger.error(f"Failed to check OTP for {phone}: {e}")
            raise VerificationError('Failed to verify OTP', status=502) from e
        return check.status == 'approved'


def get_provider():
    return current_app.extensions['otp_provider']


def mark_phone_verified(profile, phone, now=None):
    profile.phone = phone
    profile.phone_verified = True
    profile.phone_verified_at = now or utcnow()


class VerificationSession:
    """One attempt at verifying a phone number for a user."""

    def __init__(self, record, region='IN'):
        self.record = record
        self.region = region

    @classmethod
    def begin(cls, user, phone, ttl_minutes, region='IN'):
        if not is_local_phone(phone):
            raise VerificationError('Enter your 10-digit mobile number')
        record = PhoneVerification(
            user_id=user.id,
            phone=clean_phone(phone),
            expires_at=utcnow() + timedelta(minutes=ttl_minutes),
        )
        db.session.add(record)
        db.session.flush()
        return cls(record, region)

    @classmethod
    def load(cls, session_id, user, region='IN'):
        if not session_id:
            return None
        record = db.session.get(PhoneVerification, session_id)
        if record is None or record.user_id != user.id:
            return None
        return cls(record, region)

    @property
    def id(self):
        return self.record.id

    @property
    def state(self):
        if self.record.verified:
            return 'verified'
        if self.record.provider_sid:
            return 'otp'
        return 'phone'

    @property
    def e164(self):
        formatted = format_phone(self.record.phone, self.region)
        if not formatted:
            raise VerificationError('Invalid phone number')
        return formatted

    def start(self, provider):
        self.record.provider_sid = provider.send_code(self.e164)
        db.session.commit()
        logger.info(f"OTP sent for verification session {self.id}")

    def confirm(self, code, provider, max_attempts, now=None):
        now = now or utcnow()
        record = self.record

        if self.state == 'verified':
            return
        if self.state == 'phone':
            raise VerificationError('No code has been sent for this number')
        if now > record.expires_at:
            raise VerificationError('Code has expired, request a new one')
        if record.attempts >= max_attempts:
            raise VerificationError('Too many attempts, request a new code', status=429)
        if not isinstance(code, str) or not CODE_PATTERN.match(code):
            raise VerificationError('Enter the 6-digit code')

        record.attempts += 1
        if not provider.check_code(self.e164, code):
            db.session.commit()
            raise VerificationError('Invalid code')

        record.verified = True
        mark_phone_verified(db.session.get(User, record.user_id).profile, record.phone, now)
        db.session.commit()
        logger.info(f"Phone {record.phone} verified for user {record.user_id}")


def _firebase_app():
    try:
        return firebase_admin.get_app()
    except ValueError:
        path = current_app.config.get('FIREBASE_CREDENTIALS')
        if not path:
            raise VerificationError('Firebase is not configured', status=503)
        return firebase_admin.initialize_app(credentials.Certificate(path))


def _national_number(e164_phone):
    try:
        return str(phonenumbers.parse(e164_phone, None).national_number)
    except phonenumbers.NumberParseException:
        return None


def _error(e):
    return jsonify({'success': False, 'error': str(e)}), e.status


@verification_bp.route('/send', methods=['POST'])
@login_required
def send_otp():
    data = request.get_json(silent=True) or {}
    config = current_app.config
    try:
        session = VerificationSession.begin(
            get_current_user(), data.get('phone'), config['OTP_TTL_MINUTES'], config['DEFAULT_PHONE_REGION'])
        session.start(get_provider())
    except VerificationError as e:
        db.session.rollback()
        return _error(e)
    return jsonify({'success': True, 'session_id': session.id, 'state': session.state}), 200


@verification_bp.route('/check', methods=['POST'])
@login_required
def check_otp():
    data = request.get_json(silent=True) or {}
    config = current_app.config

    session = VerificationSession.load(data.get('session_id'), get_current_user(), config['DEFAULT_PHONE_REGION'])
    if session is None:
        return jsonify({'success': False, 'error': 'Verification session not found'}), 404

    try:
        session.confirm(data.get('code'), get_provider(), config['OTP_MAX_ATTEMPTS'])
    except VerificationError as e:
        return _error(e)
    return jsonify({'success': True, 'state': session.state}), 200


@verification_bp.route('/firebase', methods=['POST'])
@login_required
def confirm_firebase():
    data = request.get_json(silent=True) or {}
    if not data.get('id_token'):
        return jsonify({'success': False, 'error': 'id_token is required'}), 400

    try:
        decoded = firebase_auth.verify_id_token(data['id_token'], app=_firebase_app())
    except VerificationError as e:
        return _error(e)
    except (firebase_auth.InvalidIdTokenError, firebase_auth.CertificateFetchError, ValueError) as e:
        logger.error(f"Firebase token rejected: {e}")
        return jsonify({'success': False, 'error': 'Invalid Firebase token'}), 401

    phone = _national_number(decoded.get('phone_number') or '')
    if not phone:
        return jsonify({'success': False, 'error': 'Token carries no phone number'}), 400

    profile = get_current_user().profile
    mark_phone_verified(profile, phone)
    db.session.commit()
    logger.info(f"Phone {phone} verified for user {profile.user_id} via Firebase")
    return jsonify({'success': True, 'message': 'Phone verification status updated'}), 200
