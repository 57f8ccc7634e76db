"""CLI script to rebuild wallet balances from the wallet transaction ledger.
Usage: python scripts/sync_wallets.py [--user-id ID] [--dry-run]
"""
import sys
import argparse
import pathlib
from typing import Optional
# Ensure `backend/` is on sys.path so `wozamali_office` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from wozamali_office.database import engine, create_db_and_tables
from wozamali_office import repositories, services


def main(user_id: Optional[str] = None, dry_run: bool = False) -> int:
    """Sync one wallet (or every wallet) and print what changed.

    Returns the number of wallets whose totals differed from the ledger.
    """
    create_db_and_tables()
    with Session(engine) as session:
        svc = services.WalletService(session)
        if user_id:
            user_ids = [user_id]
        else:
            user_ids = [w.user_id for w in repositories.WalletRepository(session).list_all()]
        changed = 0
        for uid in user_ids:
            result = svc.sync_wallet(uid, dry_run=dry_run)
            if result['changed']:
                changed += 1
                before, after = result['before'], result['after']
                print(f"{uid}: balance {before['balance']:.2f} -> {after['balance']:.2f}, "
                      f"points {before['total_points']} -> {after['total_points']}")
        mode = 'would change' if dry_run else 'changed'
        print(f'Checked {len(user_ids)} wallet(s); {changed} {mode}')
    return changed


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--user-id', help='Sync only this user\'s wallet')
    parser.add_argument('--dry-run', action='store_true', help='Report differences without writing')
    args = parser.parse_args()
    main(user_id=args.user_id, dry_run=args.dry_run)
