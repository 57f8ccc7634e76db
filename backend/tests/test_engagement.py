from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from wozamali_office import services
from wozamali_office.main import app

client = TestClient(app)


def _event(headers, title, event_date, **fields):
    r = client.post('/api/admin/community-events', json={'title': title, 'event_date': event_date, **fields}, headers=headers)
    assert r.status_code == 201
    return r.json()['event']


def test_community_events_crud_and_filters(admin_headers):
    early = _event(admin_headers, 'Beach clean-up', '2031-03-01', start_time='09:00', location='Muizenberg')
    late = _event(admin_headers, 'Drop-off day', '2031-03-20')
    done = _event(admin_headers, 'Old drive', '2031-03-05', status='completed')
    assert early['status'] == 'upcoming'
    assert early['participants'] == 0

    r = client.get('/api/admin/community-events', params={'fromDate': '2031-03-01', 'toDate': '2031-03-10'}, headers=admin_headers)
    assert r.headers['cache-control'].startswith('no-store')
    ids = [e['id'] for e in r.json()['events']]
    assert ids == [early['id'], done['id']]
    upcoming = client.get('/api/admin/community-events', params={'status': 'upcoming', 'fromDate': '2031-03-01', 'toDate': '2031-03-31'}, headers=admin_headers).json()
    assert [e['id'] for e in upcoming['events']] == [early['id'], late['id']]
    assert upcoming['count'] == 2

    patched = client.patch(f"/api/admin/community-events/{late['id']}", json={'status': 'cancelled', 'participants': 12}, headers=admin_headers).json()['event']
    assert patched['status'] == 'cancelled'
    assert patched['participants'] == 12
    assert patched['title'] == 'Drop-off day'

    assert client.delete(f"/api/admin/community-events/{late['id']}", headers=admin_headers).json() == {'success': True}
    assert client.delete(f"/api/admin/community-events/{late['id']}", headers=admin_headers).status_code == 404
    assert client.patch('/api/admin/community-events/missing', json={'title': 'x'}, headers=admin_headers).status_code == 404


def test_community_event_validation(admin_headers, resident, headers_for):
    assert client.post('/api/admin/community-events', json={'title': 'No date'}, headers=admin_headers).status_code == 400
    assert client.post('/api/admin/community-events', json={'title': '  ', 'event_date': '2031-01-01'}, headers=admin_headers).status_code == 400
    bad = client.post('/api/admin/community-events', json={'title': 'Odd', 'event_date': '2031-01-01', 'status': 'postponed'}, headers=admin_headers)
    assert bad.status_code == 400
    assert client.post('/api/admin/community-events', json={'title': 'x', 'event_date': '2031-01-01'}, headers=headers_for(resident)).status_code == 403


def test_public_events_default_to_upcoming(admin_headers):
    live = _event(admin_headers, 'Schools recycling fair', '2032-06-01')
    past = _event(admin_headers, 'Last year fair', '2032-06-02', status='completed')
    window = {'fromDate': '2032-06-01', 'toDate': '2032-06-30'}
    ids = {e['id'] for e in client.get('/api/community-events', params=window).json()['events']}
    assert live['id'] in ids
    assert past['id'] not in ids
    completed = client.get('/api/community-events', params={**window, 'status': 'completed'}).json()['events']
    assert [e['id'] for e in completed] == [past['id']]


def test_events_listing_degrades_to_empty(admin_headers, monkeypatch):
    def fail(self, status=None, from_date=None, to_date=None):
        raise SQLAlchemyError('events table missing')
    monkeypatch.setattr(services.CommunityEventService, 'list', fail)
    r = client.get('/api/community-events')
    assert r.status_code == 200
    assert r.json() == {'events': [], 'count': 0, 'error': 'events table missing'}


def test_discover_earn_cards_upsert_by_type(admin_headers, resident, headers_for):
    body = {'card_type': 'daily_tips', 'title': 'Rinse before recycling', 'image_url': 'https://img.example/tips.png'}
    first = client.post('/api/admin/discover-earn', json=body, headers=admin_headers)
    assert first.status_code == 201
    card = first.json()['card']
    assert card['button_color'] == 'yellow'
    assert card['is_active'] is True

    again = client.post('/api/admin/discover-earn', json={**body, 'title': 'Flatten your boxes', 'display_order': 2}, headers=admin_headers).json()['card']
    assert again['id'] == card['id']
    assert again['title'] == 'Flatten your boxes'

    listing = client.get('/api/admin/discover-earn', headers=admin_headers).json()
    assert [c['id'] for c in listing['cards'] if c['card_type'] == 'daily_tips'] == [card['id']]
    assert listing['count'] == len(listing['cards'])

    patched = client.patch(f"/api/admin/discover-earn/{card['id']}", json={'is_active': False}, headers=admin_headers).json()['card']
    assert patched['is_active'] is False
    assert client.delete(f"/api/admin/discover-earn/{card['id']}", headers=admin_headers).json() == {'success': True}
    assert client.delete(f"/api/admin/discover-earn/{card['id']}", headers=admin_headers).status_code == 404


def test_discover_earn_card_validation(admin_headers, resident, headers_for):
    bad_type = client.post('/api/admin/discover-earn', json={'card_type': 'lottery', 'title': 'x', 'image_url': 'https://img.example/x.png'}, headers=admin_headers)
    assert bad_type.status_code == 400
    assert 'Invalid card_type' in bad_type.json()['error']
    no_image = client.post('/api/admin/discover-earn', json={'card_type': 'watch_ads', 'title': 'Watch', 'image_url': ''}, headers=admin_headers)
    assert no_image.status_code == 400
    assert client.get('/api/admin/discover-earn', headers=headers_for(resident)).status_code == 403
