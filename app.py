import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.security import generate_password_hash

from admin import admin_bp
from auth import auth_bp
from config import Config
from database import Profile, User, db
from donors import donors_bp
from emergency import emergency_bp
from messaging import Messenger, messaging_bp
from notifications import notifications_bp
from notifier import notify_bp
from profiles import profiles_bp
from safety import safety_bp
from verification import TwilioVerifyProvider, verification_bp

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BLUEPRINTS = (
    auth_bp,
    profiles_bp,
    donors_bp,
    emergency_bp,
    notify_bp,
    messaging_bp,
    verification_bp,
    notifications_bp,
    safety_bp,
    admin_bp,
)


def register_jwt_handlers(jwt):
    @jwt.token_verification_loader
    def reject_special_purpose_tokens(jwt_header, jwt_payload):
        # reset links carry a purpose claim and must not open the API
        return 'purpose' not in jwt_payload

    @jwt.token_verification_failed_loader
    def special_purpose_token(jwt_header, jwt_payload):
        return jsonify({'error': 'Token cannot be used here'}), 401

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({'error': 'Authentication required'}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({'error': 'Invalid token'}), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({'error': 'Token has expired'}), 401


def register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Endpoint not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'error': 'Internal server error'}), 500


def ensure_admin(app):
    email = app.config.get('ADMIN_EMAIL')
    password = app.config.get('ADMIN_PASSWORD')
    if not email or not password:
        return

    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        return

    admin = User(email=email, password=generate_password_hash(password), role='admin')
    db.session.add(admin)
    db.session.flush()
    db.session.add(Profile(user_id=admin.id, full_name='Administrator'))
    db.session.commit()
    logger.info(f"Admin user created: {email}")


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)
    jwt = JWTManager(app)
    CORS(app, origins=app.config['CORS_ORIGINS'])

    # external providers, replaceable in tests
    app.extensions['messenger'] = Messenger.from_config(app.config)
    app.extensions['otp_provider'] = TwilioVerifyProvider.from_config(app.config)

    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)

    register_jwt_handlers(jwt)
    register_error_handlers(app)

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'status': 'healthy'}), 200

    with app.app_context():
        db.create_all()
        ensure_admin(app)

    return app


if __name__ == '__main__':
    app = create_app()
    logger.info("Starting LifeLine API")
    app.run(debug=app.config['DEBUG'], host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
