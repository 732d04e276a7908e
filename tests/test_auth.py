from datetime import timedelta

import pytest
from flask_jwt_extended import create_access_token

from conftest import PASSWORD, auth_headers, register
from database import User


def register_payload(**overrides):
    payload = {
        'email': 'new@example.com',
        'password': PASSWORD,
        'confirm_password': PASSWORD,
        'full_name': 'New Person',
    }
    payload.update(overrides)
    return payload


def test_register_creates_user_and_profile(client):
    resp = client.post('/api/auth/register', json=register_payload(email='New@Example.com'))

    assert resp.status_code == 201
    body = resp.get_json()
    assert body['access_token']
    assert body['user']['email'] == 'new@example.com'
    assert body['user']['role'] == 'volunteer'
    assert body['user']['profile']['full_name'] == 'New Person'


def test_register_validation(client):
    assert client.post('/api/auth/register', json=register_payload(full_name='')).status_code == 400
    assert client.post('/api/auth/register',
                       json=register_payload(confirm_password='other123')).get_json() == {
        'error': 'Passwords do not match'}
    assert client.post('/api/auth/register',
                       json=register_payload(password='abc', confirm_password='abc')).status_code == 400


@pytest.mark.parametrize('overrides', [
    {'full_name': 12},
    {'email': 5},
    {'password': 123456, 'confirm_password': 123456},
    {'email': ['new@example.com']},
])
def test_register_rejects_non_string_fields(app, client, overrides):
    resp = client.post('/api/auth/register', json=register_payload(**overrides))

    assert resp.status_code == 400
    with app.app_context():
        assert User.query.count() == 0


def test_duplicate_email(client):
    register(client, 'dup@example.com')
    resp = client.post('/api/auth/register', json=register_payload(email='dup@example.com'))
    assert resp.status_code == 409


def test_login_and_me(client):
    register(client, 'login@example.com', full_name='Login Person')

    resp = client.post('/api/auth/login', json={'email': 'login@example.com', 'password': PASSWORD})
    assert resp.status_code == 200
    token = resp.get_json()['access_token']

    me = client.get('/api/auth/me', headers=auth_headers(token)).get_json()
    assert me['email'] == 'login@example.com'
    assert me['profile']['full_name'] == 'Login Person'


def test_login_rejects_bad_credentials(client):
    register(client, 'login@example.com')

    assert client.post('/api/auth/login', json={'email': 'login@example.com',
                                                'password': 'wrong-pass'}).status_code == 401
    assert client.post('/api/auth/login', json={'email': 'login@example.com'}).status_code == 400


@pytest.mark.parametrize('payload', [
    {'email': 5, 'password': PASSWORD},
    {'email': 'login@example.com', 'password': 123456},
])
def test_login_rejects_non_string_credentials(client, payload):
    register(client, 'login@example.com')

    assert client.post('/api/auth/login', json=payload).status_code == 400


def test_password_reset_rejects_non_string_email(client):
    assert client.post('/api/auth/password-reset', json={'email': 42}).status_code == 400


def test_me_requires_token(client):
    assert client.get('/api/auth/me').status_code == 401
    assert client.get('/api/auth/me', headers=auth_headers('not-a-token')).status_code == 401


def test_password_reset_request_does_not_reveal_accounts(client):
    register(client, 'known@example.com')

    known = client.post('/api/auth/password-reset', json={'email': 'known@example.com'})
    unknown = client.post('/api/auth/password-reset', json={'email': 'ghost@example.com'})

    assert known.status_code == unknown.status_code == 200
    assert known.get_json() == unknown.get_json()


def reset_token(app, user_id, minutes=30):
    with app.app_context():
        return create_access_token(
            identity=user_id,
            additional_claims={'purpose': 'password_reset'},
            expires_delta=timedelta(minutes=minutes),
        )


def test_password_reset_confirm(app, client):
    _, user_id = register(client, 'reset@example.com')
    token = reset_token(app, user_id)

    resp = client.post('/api/auth/password-reset/confirm', json={
        'token': token, 'password': 'brand-new', 'confirm_password': 'brand-new',
    })

    assert resp.status_code == 200
    assert client.post('/api/auth/login', json={'email': 'reset@example.com',
                                                'password': 'brand-new'}).status_code == 200
    assert client.post('/api/auth/login', json={'email': 'reset@example.com',
                                                'password': PASSWORD}).status_code == 401


def test_password_reset_rejects_access_and_expired_tokens(app, client):
    access_token, user_id = register(client, 'reset@example.com')
    payload = {'password': 'brand-new', 'confirm_password': 'brand-new'}

    assert client.post('/api/auth/password-reset/confirm',
                       json=dict(payload, token=access_token)).status_code == 400
    assert client.post('/api/auth/password-reset/confirm',
                       json=dict(payload, token=reset_token(app, user_id, minutes=-1))).status_code == 400
    assert client.post('/api/auth/password-reset/confirm',
                       json=dict(payload, token='garbage')).status_code == 400


def test_reset_token_cannot_open_the_api(app, client):
    _, user_id = register(client, 'reset@example.com')
    assert client.get('/api/auth/me', headers=auth_headers(reset_token(app, user_id))).status_code == 401


def test_health(client):
    assert client.get('/api/health').get_json() == {'status': 'healthy'}


def test_unknown_route_is_json(client):
    resp = client.get('/api/nothing-here')
    assert resp.status_code == 404
    assert resp.get_json() == {'error': 'Endpoint not found'}
