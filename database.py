import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

BLOOD_TYPES = ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')
AVAILABILITY_STATUSES = ('available', 'available_later', 'unavailable')
URGENCY_LEVELS = ('critical', 'urgent', 'standard')
EMERGENCY_STATUSES = ('pending', 'active', 'fulfilled', 'cancelled')
LOCATION_LEVELS = ('village', 'tehsil', 'district')
REPORT_TYPES = ('spam', 'fake_profile', 'harassment', 'inappropriate', 'other')
REPORT_STATUSES = ('pending', 'reviewed', 'resolved', 'dismissed')
ROLES = ('donor', 'volunteer', 'admin')

# Donors in these states are eligible for matching and notification
REACHABLE_STATUSES = ('available', 'available_later')


def new_id():
    return str(uuid.uuid4())


def utcnow():
    # naive UTC, sqlite drops tzinfo on the way back
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='volunteer')
    created_at = db.Column(db.DateTime, default=utcnow)

    profile = db.relationship('Profile', backref='user', uselist=False)


class Location(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    level = db.Column(db.String(20), nullable=False)
    parent_id = db.Column(db.String(36), db.ForeignKey('location.id'))
    created_at = db.Column(db.DateTime, default=utcnow)

    parent = db.relationship('Location', remote_side=[id])


class Profile(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), unique=True, nullable=False)
    full_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20))
    phone_verified = db.Column(db.Boolean, default=False)
    phone_verified_at = db.Column(db.DateTime)
    location_id = db.Column(db.String(36), db.ForeignKey('location.id'))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    location_updated_at = db.Column(db.DateTime)
    avatar_url = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    location = db.relationship('Location')
    donor = db.relationship('Donor', backref='profile', uselist=False)


class Donor(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    profile_id = db.Column(db.String(36), db.ForeignKey('profile.id'), unique=True, nullable=False)
    blood_type = db.Column(db.String(3), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='available')
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    verification_notes = db.Column(db.Text)
    total_donations = db.Column(db.Integer, nullable=False, default=0)
    last_donation_date = db.Column(db.Date)
    next_eligible_date = db.Column(db.Date)
    donation_locked_until = db.Column(db.Date)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    availability_windows = db.relationship('DonorAvailability', backref='donor', lazy=True)


class DonorAvailability(db.Model):
    __tablename__ = 'donor_availability'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    donor_id = db.Column(db.String(36), db.ForeignKey('donor.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False)
    previous_status = db.Column(db.String(20), nullable=False)
    expires_at = db.Column(db.DateTime)
    reverted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)


class EmergencyRequest(db.Model):
    __tablename__ = 'emergency_request'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    requester_id = db.Column(db.String(36), db.ForeignKey('profile.id'))
    blood_type = db.Column(db.String(3), nullable=False)
    units_needed = db.Column(db.Integer, nullable=False, default=1)
    urgency = db.Column(db.String(20), nullable=False, default='urgent')
    status = db.Column(db.String(20), nullable=False, default='pending')
    contact_phone = db.Column(db.String(20), nullable=False)
    hospital_name = db.Column(db.String(200))
    location_id = db.Column(db.String(36), db.ForeignKey('location.id'))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    notes = db.Column(db.Text)
    expires_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class Notification(db.Model):
    __tablename__ = 'notification'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    type = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    related_id = db.Column(db.String(36))
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship('User', backref=db.backref('notifications', lazy=True))

    def __repr__(self):
        return f"<Notification {self.id} - {self.user_id}>"


class PhoneVerification(db.Model):
    __tablename__ = 'phone_verification'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    provider_sid = db.Column(db.String(64))
    attempts = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.DateTime, nullable=False)
    verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)


class Report(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    reporter_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    reported_user_id = db.Column(db.String(36), db.ForeignKey('user.id'))
    reported_emergency_id = db.Column(db.String(36), db.ForeignKey('emergency_request.id'))
    report_type = db.Column(db.String(20), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='pending')
    admin_notes = db.Column(db.Text)
    reviewed_by = db.Column(db.String(36), db.ForeignKey('user.id'))
    reviewed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class BlockedUser(db.Model):
    __tablename__ = 'blocked_user'
    __table_args__ = (db.UniqueConstraint('blocker_id', 'blocked_id'),)

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    blocker_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    blocked_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    reason = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)


def isoformat(value):
    return value.isoformat() if value else None
