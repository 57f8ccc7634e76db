import uuid

from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from wozamali_office import models, services
from wozamali_office.main import app

client = TestClient(app)


def _email(prefix='user'):
    return f'{prefix}-{uuid.uuid4().hex[:8]}@example.com'


def test_create_user_creates_wallet(admin_headers, db):
    email = _email('created')
    r = client.post('/api/admin/create-user', json={'email': email, 'full_name': 'Sipho Resident', 'role': 'resident', 'password': 'resident-pass'}, headers=admin_headers)
    assert r.status_code == 201
    user = r.json()['user']
    assert user['role'] == 'resident'
    assert user['has_password'] is True
    wallet = db.exec(select(models.Wallet).where(models.Wallet.user_id == user['id'])).first()
    assert wallet is not None
    assert wallet.balance == 0

    login = client.post('/api/auth/login', json={'email': email, 'password': 'resident-pass'})
    assert login.status_code == 200


def test_create_user_duplicate_and_unknown_role(admin_headers):
    email = _email('dup')
    assert client.post('/api/admin/create-user', json={'email': email, 'role': 'staff'}, headers=admin_headers).status_code == 201
    dup = client.post('/api/admin/create-user', json={'email': email, 'role': 'staff'}, headers=admin_headers)
    assert dup.status_code == 409
    bad = client.post('/api/admin/create-user', json={'email': _email('bad'), 'role': 'wizard'}, headers=admin_headers)
    assert bad.status_code == 400
    assert "Role 'wizard' not found" in bad.json()['error']
    assert 'super_admin' in bad.json()['error']


def test_update_user_role_normalises_alias(resident, admin_headers, db):
    r = client.post('/api/admin/update-user-role', json={'userId': resident.id, 'role': 'superadmin'}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['role'] == 'super_admin'
    row = db.get(models.User, resident.id)
    role = db.get(models.Role, row.role_id)
    assert role.name == 'super_admin'
    assert row.role == 'super_admin'


def test_update_user_role_falls_back_to_upper_case_catalogue(resident, admin_headers, db):
    db.add(models.Role(name='AUDITOR', description='upper-case catalogue entry'))
    db.commit()
    r = client.post('/api/admin/update-user-role', json={'userId': resident.id, 'role': 'auditor'}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['role'] == 'AUDITOR'


def test_update_user_role_missing_user(admin_headers):
    r = client.post('/api/admin/update-user-role', json={'userId': 'missing', 'role': 'admin'}, headers=admin_headers)
    assert r.status_code == 404


def test_approve_and_pending_applicants(make_user, admin_headers):
    pending = make_user('admin', status='pending')
    listed = client.get('/api/admin/pending-applicants', headers=admin_headers).json()['users']
    assert pending.id in {u['id'] for u in listed}

    r = client.post('/api/admin/approve-user', json={'userId': pending.id}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['user']['status'] == 'active'
    assert r.json()['user']['is_approved'] is True
    listed = client.get('/api/admin/pending-applicants', headers=admin_headers).json()['users']
    assert pending.id not in {u['id'] for u in listed}


def test_find_user_by_email(resident, admin_headers):
    r = client.get('/api/admin/users/find', params={'email': resident.email.upper()}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['user']['id'] == resident.id
    missing = client.get('/api/admin/users/find', params={'email': 'ghost@example.com'}, headers=admin_headers)
    assert missing.status_code == 404


def test_users_pagination(make_user, admin_headers):
    for _ in range(3):
        make_user('resident')
    r = client.get('/api/admin/users', params={'page': 1, 'limit': 2}, headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body['count'] == 2
    assert body['pagination']['limit'] == 2
    assert body['pagination']['pages'] == -(-body['pagination']['total'] // 2)
    first = body['users'][0]
    assert first['role']['name']
    assert first['is_active'] is True
    assert 'password_hash' not in first
    clamped = client.get('/api/admin/users', params={'limit': 10000}, headers=admin_headers).json()
    assert clamped['pagination']['limit'] == 200


def test_users_listing_degrades_to_empty_page(admin_headers, monkeypatch):
    def fail(self, page, limit):
        raise SQLAlchemyError('users table locked')
    monkeypatch.setattr(services.UserService, 'list_page', fail)
    r = client.get('/api/admin/users', headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == {'users': [], 'count': 0, 'error': 'users table locked'}


def test_users_listing_resolves_role_id(make_user, admin_headers, db):
    role = db.exec(select(models.Role).where(models.Role.name == 'collector')).first()
    user = make_user(None, role_id=role.id)
    rows = client.get('/api/admin/users', params={'limit': 200}, headers=admin_headers).json()['users']
    assert next(u for u in rows if u['id'] == user.id)['role'] == {'name': 'collector'}


def test_reset_password_rules(make_user, headers_for, super_headers, admin_headers):
    target = make_user('staff', password='old-password-1')
    body = {'userId': target.id, 'newPassword': 'new-password-1'}
    assert client.post('/api/admin/reset-user-password', json=body, headers=admin_headers).status_code == 403
    short = client.post('/api/admin/reset-user-password', json={'userId': target.id, 'newPassword': 'short'}, headers=super_headers)
    assert short.status_code == 400
    ok = client.post('/api/admin/reset-user-password', json=body, headers=super_headers)
    assert ok.status_code == 200
    login = client.post('/api/auth/login', json={'email': target.email, 'password': 'new-password-1'})
    assert login.status_code == 200
