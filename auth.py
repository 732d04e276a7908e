import logging
import smtplib
import ssl
from datetime import timedelta
from email.message import EmailMessage
from functools import wraps

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import create_access_token, decode_token, get_jwt_identity, jwt_required
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from werkzeug.security import check_password_hash, generate_password_hash

from database import Profile, User, db, isoformat

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

MIN_PASSWORD_LENGTH = 6
RESET_TOKEN_PURPOSE = 'password_reset'
RESET_MESSAGE = 'Password reset link sent if email exists!'


def first_missing(data, fields):
    """Return the first field absent, blank or not a string in ``data``, else None."""
    for field in fields:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            return field
    return None


def clean_text(value):
    return value.strip() if isinstance(value, str) else ''


def get_current_user():
    identity = get_jwt_identity()
    if identity is None:
        return None
    return db.session.get(User, identity)


def login_required(f):
    @wraps(f)
    @jwt_required()
    def decorated(*args, **kwargs):
        if get_current_user() is None:
            return jsonify({'error': 'User not found'}), 401
        return f(*args, **kwargs)
    return decorated


def role_required(required_roles):
    def decorator(f):
        @wraps(f)
        @jwt_required()
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if not user or user.role not in required_roles:
                return jsonify({'error': 'Insufficient permissions'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def issue_token(user):
    return create_access_token(identity=user.id, additional_claims={'role': user.role})


def user_json(user):
    profile = user.profile
    return {
        'id': user.id,
        'email': user.email,
        'role': user.role,
        'created_at': isoformat(user.created_at),
        'profile': {
            'id': profile.id,
            'full_name': profile.full_name,
            'phone': profile.phone,
            'phone_verified': bool(profile.phone_verified),
            'location_id': profile.location_id,
        } if profile else None,
    }


def check_new_password(password, confirm_password):
    if password != confirm_password:
        return 'Passwords do not match'
    if len(password) < MIN_PASSWORD_LENGTH:
        return f'Password must be at least {MIN_PASSWORD_LENGTH} characters'
    return None


def send_email(to, subject, body):
    """Best-effort mail through SMTP over SSL; logs and returns False when unavailable."""
    config = current_app.config
    if not config.get('MAIL_USERNAME') or not config.get('MAIL_PASSWORD'):
        logger.info(f"Mail not configured, skipping email to {to}: {subject}")
        return False

    msg = EmailMessage()
    msg['Subject'] = subject
    msg['From'] = config['MAIL_USERNAME']
    msg['To'] = to
    msg.set_content(body)

    try:
        context = ssl.create_default_context()
        with smtplib.SMTP_SSL(config['MAIL_SERVER'], config['MAIL_PORT'], context=context) as smtp:
            smtp.login(config['MAIL_USERNAME'], config['MAIL_PASSWORD'])
            smtp.send_message(msg)
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Email to {to} failed: {e}")
        return False


@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}

    missing = first_missing(data, ['email', 'password', 'confirm_password', 'full_name'])
    if missing:
        return jsonify({'error': f'{missing} is required'}), 400

    problem = check_new_password(data['password'], data['confirm_password'])
    if problem:
        return jsonify({'error': problem}), 400

    email = data['email'].strip().lower()
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 409

    user = User(email=email, password=generate_password_hash(data['password']), role='volunteer')
    db.session.add(user)
    db.session.flush()
    db.session.add(Profile(user_id=user.id, full_name=data['full_name'].strip()))
    db.session.commit()

    logger.info(f"Registered user {user.id}")
    return jsonify({
        'message': 'User registered successfully',
        'access_token': issue_token(user),
        'user': user_json(user),
    }), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}

    if first_missing(data, ['email', 'password']):
        return jsonify({'error': 'Email and password are required'}), 400

    user = User.query.filter_by(email=data['email'].strip().lower()).first()
    if user and check_password_hash(user.password, data['password']):
        return jsonify({
            'message': 'Login successful',
            'access_token': issue_token(user),
            'user': user_json(user),
        }), 200

    return jsonify({'error': 'Invalid credentials'}), 401


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(user_json(get_current_user())), 200


@auth_bp.route('/password-reset', methods=['POST'])
def password_reset_request():
    data = request.get_json(silent=True) or {}
    if first_missing(data, ['email']):
        return jsonify({'error': 'email is required'}), 400

    user = User.query.filter_by(email=data['email'].strip().lower()).first()
    if user:
        token = create_access_token(
            identity=user.id,
            additional_claims={'purpose': RESET_TOKEN_PURPOSE},
            expires_delta=timedelta(minutes=30),
        )
        link = f"{current_app.config['APP_URL']}/auth?mode=reset&token={token}"
        send_email(user.email, 'LifeLine password reset',
                   f"Use this link within 30 minutes to choose a new password:\n\n{link}")

    # Same answer whether or not the email exists
    return jsonify({'message': RESET_MESSAGE}), 200


@auth_bp.route('/password-reset/confirm', methods=['POST'])
def password_reset_confirm():
    data = request.get_json(silent=True) or {}

    missing = first_missing(data, ['token', 'password', 'confirm_password'])
    if missing:
        return jsonify({'error': f'{missing} is required'}), 400

    problem = check_new_password(data['password'], data['confirm_password'])
    if problem:
        return jsonify({'error': problem}), 400

    try:
        claims = decode_token(data['token'])
    except (PyJWTError, JWTExtendedException):
        return jsonify({'error': 'Reset link is invalid or has expired'}), 400
    if claims.get('purpose') != RESET_TOKEN_PURPOSE:
        return jsonify({'error': 'Reset link is invalid or has expired'}), 400

    user = db.session.get(User, claims['sub'])
    if not user:
        return jsonify({'error': 'Reset link is invalid or has expired'}), 400

    user.password = generate_password_hash(data['password'])
    db.session.commit()
    return jsonify({'message': 'Password updated successfully'}), 200
