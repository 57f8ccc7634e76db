"""Wallet, ledger and withdrawal endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from .. import models, repositories, services
from ..database import get_session
from ..auth import get_current_user
from ..errors import service_errors
from ..permissions import require_office_user, require_super_admin
from ..schemas import WithdrawalIdIn, WithdrawalIn, WithdrawalStatusIn

router = APIRouter(tags=["finance"])


@router.get("/api/admin/wallets")
def list_wallets(db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    rows = services.WalletService(db).list_wallets()
    return {
        "wallets": rows,
        "count": len(rows),
        "totalBalance": round(sum(r["balance"] for r in rows), 2),
        "totalPoints": sum(r["total_points"] for r in rows),
    }


@router.get("/api/admin/transactions")
def list_transactions(user_id: Optional[str] = None, limit: int = 100, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    rows = services.WalletService(db).ledger(user_id=user_id, limit=limit)
    return {"transactions": rows, "count": len(rows)}


@router.post("/api/admin/wallets/{user_id}/sync")
def sync_wallet(user_id: str, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    """Rebuild a wallet's balance and points from its ledger."""
    if not repositories.UserRepository(db).get(user_id):
        raise HTTPException(status_code=404, detail="user not found")
    return services.WalletService(db).sync_wallet(user_id)


@router.post("/api/withdrawals", status_code=201)
def request_withdrawal(payload: WithdrawalIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    with service_errors():
        withdrawal = services.WithdrawalService(db).request(
            user, payload.amount, payout_method=payload.payout_method, bank_details=payload.bank_details,
        )
    return {"success": True, "withdrawal": withdrawal}


@router.get("/api/admin/withdrawals")
def list_withdrawals(status: Optional[str] = "all", db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    rows = services.WithdrawalService(db).list(status)
    return {"withdrawals": rows, "count": len(rows)}


@router.patch("/api/admin/withdrawals/{withdrawal_id}")
def update_withdrawal(withdrawal_id: str, payload: WithdrawalStatusIn, db: Session = Depends(get_session), user: models.User = Depends(require_office_user)):
    """Record a decision on a withdrawal; approval debits the wallet once."""
    with service_errors():
        return services.WithdrawalService(db).update_status(
            withdrawal_id, payload.status, admin_notes=payload.admin_notes, payout_method=payload.payout_method, actor=user,
        )


@router.post("/api/admin/delete-withdrawal")
def delete_withdrawal(payload: WithdrawalIdIn, db: Session = Depends(get_session), user: models.User = Depends(require_super_admin)):
    with service_errors():
        return services.WithdrawalService(db).delete(payload.withdrawal_id, actor=user)
