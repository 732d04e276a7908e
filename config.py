import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret')  # Change this in production
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=24)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///lifeline.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DEBUG = os.environ.get('FLASK_DEBUG', '0') == '1'

    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5000')

    # Twilio: SMS/WhatsApp relay and Verify (OTP)
    TWILIO_ACCOUNT_SID = os.environ.get('TWILIO_ACCOUNT_SID')
    TWILIO_AUTH_TOKEN = os.environ.get('TWILIO_AUTH_TOKEN')
    TWILIO_PHONE_NUMBER = os.environ.get('TWILIO_PHONE_NUMBER')
    TWILIO_VERIFY_SERVICE_SID = os.environ.get('TWILIO_VERIFY_SERVICE_SID')
    DEFAULT_PHONE_REGION = os.environ.get('DEFAULT_PHONE_REGION', 'IN')

    # Firebase Admin SDK service account (phone auth done on the client)
    FIREBASE_CREDENTIALS = os.environ.get('FIREBASE_CREDENTIALS')

    MAIL_SERVER = os.environ.get('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', 465))
    MAIL_USERNAME = os.environ.get('EMAIL_USER')
    MAIL_PASSWORD = os.environ.get('EMAIL_PASS')

    ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL')
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD')

    OTP_TTL_MINUTES = int(os.environ.get('OTP_TTL_MINUTES', 10))
    OTP_MAX_ATTEMPTS = int(os.environ.get('OTP_MAX_ATTEMPTS', 5))
    DONATION_RECOVERY_DAYS = 90
    NEARBY_DEFAULT_KM = float(os.environ.get('NEARBY_DEFAULT_KM', 50))


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    JWT_SECRET_KEY = 'test-jwt-secret-with-enough-length-for-hs256'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    TWILIO_ACCOUNT_SID = None
    TWILIO_AUTH_TOKEN = None
    TWILIO_PHONE_NUMBER = None
    TWILIO_VERIFY_SERVICE_SID = None
    FIREBASE_CREDENTIALS = None
    MAIL_USERNAME = None
    MAIL_PASSWORD = None
    ADMIN_EMAIL = None
    ADMIN_PASSWORD = None
