import sys
from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from wozamali_office import models, services
from wozamali_office.main import app

client = TestClient(app)


def _fund(db, user_id, amount, weight=0.0):
    return services.WalletService(db).apply_transaction(user_id, amount, 'adjustment', weight_kg=weight, description='test credit')


def _wallet(db, user_id):
    db.expire_all()
    return db.exec(select(models.Wallet).where(models.Wallet.user_id == user_id)).first()


def test_apply_transaction_tracks_balance_points_and_clamps(resident, db):
    svc = services.WalletService(db)
    credit = svc.apply_transaction(resident.id, 12.25, 'collection_approval', weight_kg=3.9)
    assert credit.amount == 12.25
    assert credit.points == 3
    assert credit.balance_after == 12.25
    debit = svc.apply_transaction(resident.id, -20, 'withdrawal')
    assert debit.amount == -12.25
    assert debit.balance_after == 0.0
    wallet = _wallet(db, resident.id)
    assert wallet.balance == 0.0
    assert wallet.total_points == 3


def test_sync_wallet_rebuilds_from_ledger(resident, db, admin_headers):
    _fund(db, resident.id, 40.0, weight=7.2)
    wallet = _wallet(db, resident.id)
    wallet.balance = 999.0
    wallet.total_points = 0
    db.add(wallet)
    db.commit()

    dry = services.WalletService(db).sync_wallet(resident.id, dry_run=True)
    assert dry['changed'] is True
    assert dry['after'] == {'balance': 40.0, 'total_points': 7, 'total_points_spent': 0, 'total_weight_kg': 7.2}
    assert _wallet(db, resident.id).balance == 999.0

    r = client.post(f'/api/admin/wallets/{resident.id}/sync', headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['before']['balance'] == 999.0
    assert r.json()['after']['balance'] == 40.0
    assert _wallet(db, resident.id).balance == 40.0
    assert client.post('/api/admin/wallets/missing/sync', headers=admin_headers).status_code == 404


def test_sync_wallets_script(resident, db, capsys):
    sys.path.insert(0, str(Path(__file__).resolve().parents[1] / 'scripts'))
    import sync_wallets

    _fund(db, resident.id, 5.0)
    wallet = _wallet(db, resident.id)
    wallet.balance = 1.0
    db.add(wallet)
    db.commit()
    changed = sync_wallets.main(user_id=resident.id, dry_run=False)
    assert changed == 1
    assert 'balance 1.00 -> 5.00' in capsys.readouterr().out
    assert _wallet(db, resident.id).balance == 5.0


def test_wallets_and_transactions_listing(resident, db, admin_headers):
    _fund(db, resident.id, 8.0)
    wallets = client.get('/api/admin/wallets', headers=admin_headers).json()
    row = next(w for w in wallets['wallets'] if w['user_id'] == resident.id)
    assert row['user']['email'] == resident.email
    txs = client.get('/api/admin/transactions', params={'user_id': resident.id}, headers=admin_headers).json()
    assert txs['count'] == 1
    assert txs['transactions'][0]['user']['full_name'] == 'Test resident'


def test_withdrawal_request_rules(resident, db, headers_for):
    headers = headers_for(resident)
    assert client.post('/api/withdrawals', json={'amount': 10}, headers=headers).status_code == 400
    _fund(db, resident.id, 50.0)
    assert client.post('/api/withdrawals', json={'amount': 0}, headers=headers).status_code == 400
    assert client.post('/api/withdrawals', json={'amount': 50.01}, headers=headers).status_code == 400
    r = client.post('/api/withdrawals', json={'amount': 20, 'payout_method': 'eft'}, headers=headers)
    assert r.status_code == 201
    assert r.json()['withdrawal']['status'] == 'pending'
    assert client.post('/api/withdrawals', json={'amount': 5}).status_code == 401


def test_approve_withdrawal_debits_once(resident, db, headers_for, admin_headers):
    _fund(db, resident.id, 50.0)
    w = client.post('/api/withdrawals', json={'amount': 20}, headers=headers_for(resident)).json()['withdrawal']

    r = client.patch(f"/api/admin/withdrawals/{w['id']}", json={'status': 'approved', 'adminNotes': 'paid', 'payoutMethod': 'cash'}, headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body['message'] == 'Withdrawal status updated successfully'
    assert body['new_balance'] == 30.0
    assert body['withdrawal']['processed_at']
    assert body['withdrawal']['notes'] == 'paid'
    assert body['withdrawal']['payout_method'] == 'cash'
    ledger = db.exec(select(models.WalletTransaction).where(models.WalletTransaction.reference_id == w['id'])).all()
    assert len(ledger) == 1
    assert ledger[0].transaction_type == 'withdrawal'
    assert ledger[0].amount == -20.0

    client.patch(f"/api/admin/withdrawals/{w['id']}", json={'status': 'pending'}, headers=admin_headers)
    again = client.patch(f"/api/admin/withdrawals/{w['id']}", json={'status': 'approved'}, headers=admin_headers).json()
    assert 'new_balance' not in again
    assert _wallet(db, resident.id).balance == 30.0


def test_approve_withdrawal_without_wallet_warns(resident, db, admin_headers):
    withdrawal = models.WithdrawalRequest(user_id=resident.id, amount=15.0)
    db.add(withdrawal)
    db.commit()
    db.refresh(withdrawal)
    r = client.patch(f'/api/admin/withdrawals/{withdrawal.id}', json={'status': 'approved'}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['warning'] == 'Withdrawal approved but wallet balance not updated'
    assert r.json()['withdrawal']['status'] == 'approved'


def test_withdrawal_status_validation_and_rejection(resident, db, headers_for, admin_headers):
    _fund(db, resident.id, 10.0)
    w = client.post('/api/withdrawals', json={'amount': 5}, headers=headers_for(resident)).json()['withdrawal']
    assert client.patch(f"/api/admin/withdrawals/{w['id']}", json={'status': 'lost'}, headers=admin_headers).status_code == 400
    assert client.patch('/api/admin/withdrawals/missing', json={'status': 'approved'}, headers=admin_headers).status_code == 404
    r = client.patch(f"/api/admin/withdrawals/{w['id']}", json={'status': 'rejected'}, headers=admin_headers)
    assert r.json()['withdrawal']['processed_at'] is None
    assert _wallet(db, resident.id).balance == 10.0


def test_list_withdrawals_with_owner(resident, db, headers_for, admin_headers):
    _fund(db, resident.id, 10.0)
    w = client.post('/api/withdrawals', json={'amount': 4}, headers=headers_for(resident)).json()['withdrawal']
    body = client.get('/api/admin/withdrawals', params={'status': 'pending'}, headers=admin_headers).json()
    row = next(x for x in body['withdrawals'] if x['id'] == w['id'])
    assert row['user'] == {'full_name': 'Test resident', 'email': resident.email}
    assert body['count'] == len(body['withdrawals'])


def test_delete_withdrawal_removes_ledger_and_resyncs(resident, db, headers_for, admin_headers, super_headers):
    _fund(db, resident.id, 30.0)
    w = client.post('/api/withdrawals', json={'amount': 10}, headers=headers_for(resident)).json()['withdrawal']
    client.patch(f"/api/admin/withdrawals/{w['id']}", json={'status': 'approved'}, headers=admin_headers)
    assert _wallet(db, resident.id).balance == 20.0

    assert client.post('/api/admin/delete-withdrawal', json={'withdrawalId': w['id']}, headers=admin_headers).status_code == 403
    r = client.post('/api/admin/delete-withdrawal', json={'withdrawalId': w['id']}, headers=super_headers)
    assert r.status_code == 200
    assert r.json() == {'ok': True, 'deleted_transactions': 1}
    assert _wallet(db, resident.id).balance == 30.0
    assert client.post('/api/admin/delete-withdrawal', json={'withdrawalId': w['id']}, headers=super_headers).status_code == 404


def test_status_only_patch_keeps_withdrawal_notes(resident, db, headers_for, admin_headers):
    _fund(db, resident.id, 10.0)
    w = client.post('/api/withdrawals', json={'amount': 5}, headers=headers_for(resident)).json()['withdrawal']
    url = f"/api/admin/withdrawals/{w['id']}"
    client.patch(url, json={'status': 'processing', 'adminNotes': 'awaiting bank'}, headers=admin_headers)
    r = client.patch(url, json={'status': 'completed'}, headers=admin_headers).json()
    assert r['withdrawal']['notes'] == 'awaiting bank'


def test_failed_debit_keeps_approval_and_warns(resident, db, headers_for, admin_headers, monkeypatch):
    _fund(db, resident.id, 25.0)
    w = client.post('/api/withdrawals', json={'amount': 10}, headers=headers_for(resident)).json()['withdrawal']

    def fail(self, *args, **kwargs):
        raise SQLAlchemyError('ledger write failed')
    monkeypatch.setattr(services.WalletService, 'apply_transaction', fail)

    r = client.patch(f"/api/admin/withdrawals/{w['id']}", json={'status': 'approved'}, headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body['warning'] == 'Withdrawal approved but wallet balance not updated'
    assert 'message' not in body
    assert 'new_balance' not in body
    db.expire_all()
    assert db.get(models.WithdrawalRequest, w['id']).status == 'approved'
    assert _wallet(db, resident.id).balance == 25.0


def test_redeem_reward_spends_points_only(resident, db, headers_for, admin_headers):
    _fund(db, resident.id, 30.0, weight=150.0)
    reward = client.post('/api/admin/rewards', json={'name': 'Eco bag', 'points_required': 100}, headers=admin_headers).json()['reward']
    headers = headers_for(resident)
    before = client.get('/api/admin/dashboard', headers=admin_headers).json()['totalPointsSpent']

    r = client.post(f"/api/rewards/{reward['id']}/redeem", headers=headers)
    assert r.status_code == 200
    assert r.json()['points_spent'] == 100
    wallet = _wallet(db, resident.id)
    assert wallet.balance == 30.0
    assert wallet.total_points == 150
    assert wallet.total_points_spent == 100

    short = client.post(f"/api/rewards/{reward['id']}/redeem", headers=headers)
    assert short.status_code == 400
    assert 'insufficient points' in short.json()['error']
    assert client.post('/api/rewards/missing/redeem', headers=headers).status_code == 404
    assert client.get('/api/admin/dashboard', headers=admin_headers).json()['totalPointsSpent'] == before + 100

    # Rebuilding from the ledger keeps earned and spent apart.
    wallet.total_points_spent = 0
    db.add(wallet)
    db.commit()
    after = services.WalletService(db).sync_wallet(resident.id)['after']
    assert after['total_points'] == 150
    assert after['total_points_spent'] == 100
    assert after['balance'] == 30.0
