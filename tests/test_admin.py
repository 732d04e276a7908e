from datetime import date, timedelta

from app import create_app
from config import TestingConfig
from conftest import auth_headers, make_donor, register
from database import Donor, Notification, User, db


def test_stats(app, client, admin_headers):
    make_donor(app, client, 'v@example.com', blood_type='O+')
    make_donor(app, client, 'p@example.com', blood_type='A+', verified=False)
    request_id = client.post('/api/emergency-requests', json={
        'blood_type': 'AB-', 'contact_phone': '9876543210',
    }).get_json()['request']['id']
    client.post('/api/emergency-requests', json={'blood_type': 'AB-', 'contact_phone': '9876543210'})
    client.patch(f'/api/emergency-requests/{request_id}', json={'status': 'cancelled'}, headers=admin_headers)

    stats = client.get('/api/admin/stats', headers=admin_headers).get_json()

    assert stats['totalDonors'] == 2
    assert stats['pendingVerification'] == 1
    assert stats['totalEmergencies'] == 2
    assert stats['activeEmergencies'] == 1
    assert stats['bloodTypeDistribution'] == [{'blood_type': 'O+', 'count': 1}]


def test_admin_routes_need_admin(app, client):
    headers, donor_id, _ = make_donor(app, client, 'd@example.com')

    assert client.get('/api/admin/stats', headers=headers).status_code == 403
    assert client.post(f'/api/admin/donors/{donor_id}/verify', headers=headers).status_code == 403
    assert client.get('/api/admin/stats').status_code == 401


def test_verify_donor(app, client, admin_headers):
    _, donor_id, user_id = make_donor(app, client, 'd@example.com', verified=False)

    resp = client.post(f'/api/admin/donors/{donor_id}/verify',
                       json={'verified': True, 'notes': 'Checked ID card'}, headers=admin_headers)

    assert resp.status_code == 200
    donor = resp.get_json()['donor']
    assert donor['is_verified'] is True
    assert donor['verification_notes'] == 'Checked ID card'
    with app.app_context():
        assert Notification.query.filter_by(user_id=user_id, type='verification').count() == 1

    assert client.post('/api/admin/donors/nope/verify', json={'verified': True},
                       headers=admin_headers).status_code == 404
    assert client.post(f'/api/admin/donors/{donor_id}/verify', json={'verified': 'yes'},
                       headers=admin_headers).status_code == 400


def test_verify_notifies_only_when_status_turns_on(app, client, admin_headers):
    _, donor_id, user_id = make_donor(app, client, 'again@example.com', verified=False)
    url = f'/api/admin/donors/{donor_id}/verify'

    def verification_notices():
        with app.app_context():
            return Notification.query.filter_by(user_id=user_id, type='verification').count()

    client.post(url, json={'verified': True}, headers=admin_headers)
    client.post(url, json={'verified': True, 'notes': 'Rechecked'}, headers=admin_headers)
    assert verification_notices() == 1

    client.post(url, json={'verified': False}, headers=admin_headers)
    assert verification_notices() == 1

    client.post(url, json={'verified': True}, headers=admin_headers)
    assert verification_notices() == 2


def test_record_donation_locks_donor(app, client, admin_headers):
    _, donor_id, _ = make_donor(app, client, 'd@example.com')
    url = f'/api/admin/donors/{donor_id}/donations'

    resp = client.post(url, headers=admin_headers)

    assert resp.status_code == 200
    donor = resp.get_json()['donor']
    recovered = (date.today() + timedelta(days=90)).isoformat()
    assert donor['total_donations'] == 1
    assert donor['last_donation_date'] == date.today().isoformat()
    assert donor['next_eligible_date'] == recovered
    assert donor['donation_locked_until'] == recovered

    assert client.post(url, headers=admin_headers).status_code == 409


def test_record_donation_after_lock_expires(app, client, admin_headers):
    _, donor_id, _ = make_donor(app, client, 'd@example.com')
    with app.app_context():
        donor = db.session.get(Donor, donor_id)
        donor.total_donations = 4
        donor.donation_locked_until = date.today() - timedelta(days=1)
        db.session.commit()

    resp = client.post(f'/api/admin/donors/{donor_id}/donations', headers=admin_headers)

    assert resp.status_code == 200
    assert resp.get_json()['donor']['total_donations'] == 5


def test_review_report(app, client, admin_headers):
    headers = auth_headers(register(client, 'reporter@example.com')[0])
    _, target_id = register(client, 'target@example.com')
    report_id = client.post('/api/reports', json={'report_type': 'harassment', 'reported_user_id': target_id},
                            headers=headers).get_json()['report']['id']

    assert [r['id'] for r in client.get('/api/admin/reports?status=pending',
                                        headers=admin_headers).get_json()] == [report_id]

    resp = client.patch(f'/api/admin/reports/{report_id}', json={'status': 'resolved', 'admin_notes': 'Warned'},
                        headers=admin_headers)

    assert resp.status_code == 200
    report = resp.get_json()['report']
    assert report['status'] == 'resolved'
    assert report['admin_notes'] == 'Warned'
    assert report['reviewed_at'] is not None
    with app.app_context():
        assert db.session.get(User, report['reviewed_by']).role == 'admin'

    assert client.get('/api/admin/reports?status=pending', headers=admin_headers).get_json() == []
    assert client.patch(f'/api/admin/reports/{report_id}', json={'status': 'closed'},
                        headers=admin_headers).status_code == 400


def test_create_locations(client, admin_headers):
    district = client.post('/api/admin/locations', json={'name': 'Nashik', 'level': 'district'},
                           headers=admin_headers)
    assert district.status_code == 201
    district_id = district.get_json()['id']

    tehsil = client.post('/api/admin/locations', json={'name': 'Sinnar', 'level': 'tehsil',
                                                       'parent_id': district_id}, headers=admin_headers)
    assert tehsil.status_code == 201

    assert client.post('/api/admin/locations', json={'name': 'X', 'level': 'state'},
                       headers=admin_headers).status_code == 400
    assert [d['name'] for d in client.get('/api/locations/districts').get_json()] == ['Nashik']
    assert [t['name'] for t in client.get(f'/api/locations/{district_id}/tehsils').get_json()] == ['Sinnar']


class BootstrapConfig(TestingConfig):
    ADMIN_EMAIL = 'Root@Example.com'
    ADMIN_PASSWORD = 'rootpass'


def test_bootstrap_admin():
    app = create_app(BootstrapConfig)
    client = app.test_client()

    resp = client.post('/api/auth/login', json={'email': 'root@example.com', 'password': 'rootpass'})

    assert resp.status_code == 200
    assert resp.get_json()['user']['role'] == 'admin'
    with app.app_context():
        db.drop_all()
