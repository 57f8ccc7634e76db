from fastapi.testclient import TestClient

from wozamali_office.main import app

client = TestClient(app)


def test_hero_slides_crud_and_public_feed(admin_headers):
    r = client.post('/api/admin/hero-slides', json={'title': 'Recycle more', 'image_url': 'https://img.example/a.jpg', 'display_order': 2}, headers=admin_headers)
    assert r.status_code == 201
    active = r.json()['slide']
    hidden = client.post('/api/admin/hero-slides', json={'title': 'Draft', 'image_url': 'https://img.example/b.jpg', 'is_active': False}, headers=admin_headers).json()['slide']

    public_ids = {s['id'] for s in client.get('/api/hero-slides').json()['slides']}
    assert active['id'] in public_ids
    assert hidden['id'] not in public_ids

    patched = client.patch(f"/api/admin/hero-slides/{hidden['id']}", json={'is_active': True, 'subtitle': 'Now live'}, headers=admin_headers)
    assert patched.status_code == 200
    assert patched.json()['slide']['subtitle'] == 'Now live'
    assert patched.json()['slide']['title'] == 'Draft'
    assert hidden['id'] in {s['id'] for s in client.get('/api/hero-slides').json()['slides']}

    orders = [s['display_order'] for s in client.get('/api/admin/hero-slides', headers=admin_headers).json()['slides']]
    assert orders == sorted(orders)

    assert client.delete(f"/api/admin/hero-slides/{hidden['id']}", headers=admin_headers).json() == {'success': True}
    assert client.delete(f"/api/admin/hero-slides/{hidden['id']}", headers=admin_headers).status_code == 404


def test_hero_slide_validation(admin_headers):
    assert client.post('/api/admin/hero-slides', json={'title': 'No image'}, headers=admin_headers).status_code == 400
    assert client.post('/api/admin/hero-slides', json={'title': ' ', 'image_url': 'x'}, headers=admin_headers).status_code == 400


def test_rewards_crud(admin_headers, resident, headers_for):
    r = client.post('/api/admin/rewards', json={'name': 'Airtime R10', 'points_required': 100, 'category': 'airtime'}, headers=admin_headers)
    assert r.status_code == 201
    reward = r.json()['reward']
    assert client.post('/api/admin/rewards', json={'name': 'Bad', 'points_required': -1}, headers=admin_headers).status_code == 400
    patched = client.patch(f"/api/admin/rewards/{reward['id']}", json={'points_required': 120}, headers=admin_headers).json()['reward']
    assert patched['points_required'] == 120
    assert reward['id'] in {x['id'] for x in client.get('/api/admin/rewards', headers=admin_headers).json()['rewards']}
    assert client.get('/api/admin/rewards', headers=headers_for(resident)).status_code == 403
    assert client.delete(f"/api/admin/rewards/{reward['id']}", headers=admin_headers).status_code == 200
    assert client.patch(f"/api/admin/rewards/{reward['id']}", json={'name': 'x'}, headers=admin_headers).status_code == 404
