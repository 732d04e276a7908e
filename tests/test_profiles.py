from conftest import auth_headers, make_donor, register
from database import Location, Profile, db


def test_profile_update(client):
    headers = auth_headers(register(client, 'profile@example.com', full_name='Old Name')[0])

    resp = client.put('/api/profile', json={'full_name': 'New Name', 'avatar_url': 'https://img.example/a.png'},
                      headers=headers)

    assert resp.status_code == 200
    profile = client.get('/api/profile', headers=headers).get_json()
    assert profile['full_name'] == 'New Name'
    assert profile['avatar_url'] == 'https://img.example/a.png'
    assert profile['is_donor'] is False


def test_changing_phone_clears_verification(app, client):
    headers, _, user_id = make_donor(app, client, 'verified@example.com')
    with app.app_context():
        Profile.query.filter_by(user_id=user_id).first().phone_verified = True
        db.session.commit()

    client.put('/api/profile', json={'phone': '9876543210'}, headers=headers)
    assert client.get('/api/profile', headers=headers).get_json()['phone_verified'] is True

    client.put('/api/profile', json={'phone': '9123456780'}, headers=headers)
    profile = client.get('/api/profile', headers=headers).get_json()
    assert profile['phone'] == '9123456780'
    assert profile['phone_verified'] is False


def test_profile_validation(client):
    headers = auth_headers(register(client, 'profile@example.com')[0])

    assert client.put('/api/profile', json={'full_name': '  '}, headers=headers).status_code == 400
    assert client.put('/api/profile', json={'phone': '123'}, headers=headers).status_code == 400
    assert client.put('/api/profile', json={'location_id': 'nowhere'}, headers=headers).status_code == 400
    assert client.put('/api/profile', json={'full_name': 12}, headers=headers).status_code == 400
    assert client.put('/api/profile', json={'phone': 9876543210}, headers=headers).status_code == 400


def test_gps_location(client):
    headers = auth_headers(register(client, 'gps@example.com')[0])

    resp = client.put('/api/profile/location', json={'latitude': 19.07, 'longitude': 72.87}, headers=headers)
    assert resp.status_code == 200
    profile = resp.get_json()['profile']
    assert profile['latitude'] == 19.07
    assert profile['location_updated_at'] is not None

    assert client.put('/api/profile/location', json={'latitude': 95, 'longitude': 72.87},
                      headers=headers).status_code == 400
    assert client.put('/api/profile/location', json={'latitude': 'north'}, headers=headers).status_code == 400


def test_location_listing(app, client):
    with app.app_context():
        district = Location(name='Satara', level='district')
        db.session.add(district)
        db.session.flush()
        db.session.add_all([
            Location(name='Wai', level='tehsil', parent_id=district.id),
            Location(name='Karad', level='tehsil', parent_id=district.id),
        ])
        db.session.commit()
        district_id = district.id

    tehsils = client.get(f'/api/locations?level=tehsil&parent_id={district_id}').get_json()
    assert [t['name'] for t in tehsils] == ['Karad', 'Wai']
    assert len(client.get('/api/locations').get_json()) == 3
    assert client.get('/api/locations?level=planet').status_code == 400
