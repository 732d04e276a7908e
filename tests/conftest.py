import pytest

from app import create_app
from config import TestingConfig
from database import Donor, User, db

PASSWORD = 'secret123'


class FakeMessenger:
    """Records sends; numbers in ``fail_for`` raise like a broken provider."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, to, body, channel='sms'):
        self.sent.append({'to': to, 'body': body, 'channel': channel})
        if to in self.fail_for:
            raise RuntimeError('provider unavailable')
        return {'success': True, 'sid': f'SM{len(self.sent)}', 'channel': channel, 'to': to}


class FakeOtpProvider:
    def __init__(self, code='123456'):
        self.code = code
        self.sent = []
        self.checked = []

    def send_code(self, phone):
        self.sent.append(phone)
        return f'VE{len(self.sent)}'

    def check_code(self, phone, code):
        self.checked.append((phone, code))
        return code == self.code


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    app.extensions['messenger'] = FakeMessenger()
    app.extensions['otp_provider'] = FakeOtpProvider()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def messenger(app):
    return app.extensions['messenger']


@pytest.fixture
def otp_provider(app):
    return app.extensions['otp_provider']


def auth_headers(token):
    return {'Authorization': f'Bearer {token}'}


def register(client, email, full_name='Test User', password=PASSWORD):
    resp = client.post('/api/auth/register', json={
        'email': email,
        'password': password,
        'confirm_password': password,
        'full_name': full_name,
    })
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    return body['access_token'], body['user']['id']


def make_admin(app, client, email='admin@example.com'):
    token, user_id = register(client, email, full_name='Admin')
    with app.app_context():
        db.session.get(User, user_id).role = 'admin'
        db.session.commit()
    return auth_headers(token)


def make_donor(app, client, email, blood_type='O+', phone='9876543210',
               verified=True, status='available', full_name='Donor'):
    """Register a user and a donor profile; returns (headers, donor_id, user_id)."""
    token, user_id = register(client, email, full_name=full_name)
    headers = auth_headers(token)
    resp = client.post('/api/donors', json={'blood_type': blood_type, 'phone': phone}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    donor_id = resp.get_json()['donor']['id']

    with app.app_context():
        donor = db.session.get(Donor, donor_id)
        donor.is_verified = verified
        donor.status = status
        db.session.commit()
    return headers, donor_id, user_id


@pytest.fixture
def admin_headers(app, client):
    return make_admin(app, client)
