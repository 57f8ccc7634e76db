"""Business logic services used by HTTP controllers.

This module holds the service classes that coordinate repositories and
carry the office's business rules: how a collection's value is worked
out, when a wallet is credited or debited, how PET-bottle revenue feeds
the Green Scholar Fund and which rows go when a collection is deleted.

Services raise `ValueError` for invalid input, `ConflictError` for
duplicates, `LookupError` for missing rows and `PermissionError` for
limits the caller may not exceed; controllers translate those into HTTP
status codes.
"""

import json
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .permissions import OFFICE_ROLES, can_approve_exports, normalize_role
from .utils.activity import record_activity

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
logger = logging.getLogger("office.services")

COLLECTION_STATUSES = ("approved", "rejected", "pending", "submitted")
CREDITED_COLLECTION_STATUSES = ("approved", "completed")
WITHDRAWAL_STATUSES = ("pending", "processing", "approved", "rejected", "completed", "cancelled")
PROCESSED_WITHDRAWAL_STATUSES = ("approved", "completed", "processing")
APPLICATION_STATUSES = ("pending", "under_review", "approved", "rejected")
BLOCKED_USER_STATUSES = ("suspended", "inactive", "deleted")
EVENT_STATUSES = ("upcoming", "completed", "cancelled")
EXPORT_DECISIONS = ("approved", "rejected")
EXPORT_REQUEST_TTL = timedelta(hours=1)
DISCOVER_CARD_TYPES = ("monthly_challenge", "daily_tips", "watch_ads", "dropoff_points", "upcoming_events")
MIN_PASSWORD_LENGTH = 8


class ConflictError(ValueError):
    """Raised when a create would duplicate an existing row."""


class ExpiredError(ValueError):
    """Raised when a time-limited grant is used after it ran out."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _money(value) -> float:
    return round(float(value or 0.0), 2)


def scholar_tier(points: int) -> str:
    """Map lifetime points to the Green Scholar tier name."""
    if points >= 5000:
        return "Gold"
    if points >= 2500:
        return "Silver"
    if points >= 1000:
        return "Bronze"
    return "Starter"


def user_to_dict(user: models.User) -> dict:
    """Public representation of a user (never includes the password hash)."""
    data = user.model_dump(exclude={"password_hash"})
    data["has_password"] = bool(user.password_hash)
    return data


def _owner_block(user: Optional[models.User]) -> Optional[dict]:
    if user is None:
        return None
    return {"full_name": user.full_name, "email": user.email}


class AuthService:
    """Password login, token issuance and profile resolution."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.role_repo = repositories.RoleRepository(session)

    @staticmethod
    def hash_password(password: str) -> str:
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
        return PWD_CTX.hash(password)

    @staticmethod
    def issue_token(user: models.User) -> str:
        """Sign an access token in the hosted auth service's claim layout."""
        expire = _now() + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": "authenticated",
            "aud": settings.JWT_AUDIENCE,
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    def authenticate(self, email: str, password: str) -> Optional[models.User]:
        """Return the user when the credentials match, else `None`.

        Raises PermissionError for accounts that exist but may not sign in.
        """
        user = self.user_repo.get_by_email(email)
        if not user or not user.password_hash:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        if user.status in BLOCKED_USER_STATUSES:
            raise PermissionError(f"account is {user.status}")
        if user.status == "pending" or not user.is_approved:
            raise PermissionError("account pending approval")
        return user

    def set_password(self, user: models.User, new_password: str) -> models.User:
        user.password_hash = self.hash_password(new_password)
        user.updated_at = _now()
        return self.user_repo.save(user)

    def register_admin(self, email: str, password: str, full_name: str) -> models.User:
        """Create an admin account that waits for office approval."""
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValueError("valid email required")
        if self.user_repo.get_by_email(email):
            raise ConflictError("email already registered")
        role = self.role_repo.get_by_name("admin")
        user = models.User(
            email=email,
            full_name=full_name.strip(),
            role="admin",
            role_id=role.id if role else None,
            status="pending",
            is_approved=False,
            password_hash=self.hash_password(password),
        )
        return self.user_repo.create(user)

    def resolve_role_name(self, user: models.User) -> str:
        return normalize_role(self.role_repo.role_name_for(user))

    def profile(self, user: models.User) -> dict:
        return {
            "id": user.id,
            "email": user.email,
            "full_name": user.full_name or "",
            "phone": user.phone,
            "role": self.resolve_role_name(user),
            "status": user.status,
            "is_approved": user.is_approved,
        }


class UserService:
    """Account administration for the office."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.role_repo = repositories.RoleRepository(session)

    def list_page(self, page: int, limit: int) -> dict:
        """Return one page of users plus pagination metadata."""
        page = max(1, page)
        limit = max(1, min(limit, settings.USERS_MAX_PAGE_SIZE))
        total = self.user_repo.count()
        users = self.user_repo.list_page((page - 1) * limit, limit)
        enriched = []
        for u in users:
            row = user_to_dict(u)
            row["role"] = {"name": normalize_role(self.role_repo.role_name_for(u)) or "resident"}
            row["is_active"] = u.status == "active"
            enriched.append(row)
        return {
            "users": enriched,
            "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if total else 0},
            "count": len(enriched),
        }

    def find_by_email(self, email: str) -> models.User:
        user = self.user_repo.get_by_email(email)
        if not user:
            raise LookupError("user not found")
        return user

    def get(self, user_id: str) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise LookupError("user not found")
        return user

    def resolve_role(self, role: str) -> Optional[models.Role]:
        """Find a catalogue role by normalised name, then by its upper-case form."""
        normalized = normalize_role(role)
        for candidate in (normalized, (role or "").strip().upper(), normalized.upper()):
            if not candidate:
                continue
            found = self.role_repo.get_by_name(candidate)
            if found:
                return found
        return None

    def _require_role(self, role: str) -> models.Role:
        found = self.resolve_role(role)
        if not found:
            available = ", ".join(r.name for r in self.role_repo.list())
            raise ValueError(f"Role '{role}' not found. Available roles: {available}")
        return found

    def create_user(self, email: str, full_name: str, role: str, password: Optional[str] = None, phone: Optional[str] = None) -> models.User:
        """Create an active user with an empty wallet."""
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValueError("valid email required")
        if self.user_repo.get_by_email(email):
            raise ConflictError("a user with this email already exists")
        role_row = self._require_role(role)
        user = models.User(
            email=email,
            full_name=(full_name or "").strip(),
            phone=phone,
            role=role_row.name,
            role_id=role_row.id,
            status="active",
            is_approved=True,
            password_hash=AuthService.hash_password(password) if password else None,
        )
        self.session.add(user)
        self.session.flush()
        repositories.WalletRepository(self.session).get_or_create(user.id)
        self.session.commit()
        self.session.refresh(user)
        return user

    def update_role(self, user_id: str, role: str, actor: Optional[models.User] = None) -> Dict[str, str]:
        user = self.get(user_id)
        role_row = self._require_role(role)
        previous = user.role
        user.role_id = role_row.id
        user.role = role_row.name
        user.updated_at = _now()
        self.user_repo.save(user)
        record_activity(self.session, "user_role_updated", actor=actor, target_type="user", target_id=user.id,
                        details={"from": previous, "to": role_row.name})
        return {"role_id": role_row.id, "role": role_row.name}

    def approve(self, user_id: str, actor: Optional[models.User] = None) -> models.User:
        user = self.get(user_id)
        user.status = "active"
        user.is_approved = True
        user.updated_at = _now()
        user = self.user_repo.save(user)
        record_activity(self.session, "user_approved", actor=actor, target_type="user", target_id=user.id)
        return user

    def pending(self) -> List[models.User]:
        return self.user_repo.list_by_status("pending")

    def team_members(self) -> List[models.User]:
        return [u for u in self.user_repo.list_all() if normalize_role(u.role) in OFFICE_ROLES]

    def reset_password(self, user_id: str, new_password: str, actor: Optional[models.User] = None) -> models.User:
        user = self.get(user_id)
        AuthService(self.session).set_password(user, new_password)
        record_activity(self.session, "user_password_reset", actor=actor, target_type="user", target_id=user.id)
        return user


class WalletService:
    """Wallet balances and the ledger that backs them.

    A wallet's balance always equals the sum of its ledger amounts, so
    every balance change goes through `apply_transaction` and
    `sync_wallet` can rebuild a wallet from its ledger.
    """
    def __init__(self, session: Session):
        self.session = session
        self.wallet_repo = repositories.WalletRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def apply_transaction(
        self,
        user_id: str,
        amount: float,
        transaction_type: str,
        *,
        weight_kg: float = 0.0,
        description: Optional[str] = None,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
        reference_id: Optional[str] = None,
        commit: bool = True,
    ) -> models.WalletTransaction:
        """Move `amount` into (or out of) a user's wallet and record it.

        Credits earn one point per whole kg. Debits never take the balance
        below zero; the ledger row records the amount actually applied.
        """
        wallet = self.wallet_repo.get_or_create(user_id)
        current = _money(wallet.balance)
        new_balance = max(0.0, _money(current + _money(amount)))
        applied = _money(new_balance - current)
        points = int(math.floor(weight_kg)) if applied >= 0 and weight_kg > 0 else 0
        wallet.balance = new_balance
        wallet.total_points = (wallet.total_points or 0) + points
        wallet.total_weight_kg = round((wallet.total_weight_kg or 0.0) + max(weight_kg, 0.0), 3)
        wallet.updated_at = _now()
        tx = models.WalletTransaction(
            user_id=user_id,
            amount=applied,
            points=points,
            weight_kg=max(weight_kg, 0.0),
            transaction_type=transaction_type,
            source_type=source_type,
            source_id=source_id,
            reference_id=reference_id,
            description=description,
            balance_after=new_balance,
        )
        self.session.add(wallet)
        self.wallet_repo.add_transaction(tx)
        if commit:
            self.session.commit()
            self.session.refresh(tx)
        return tx

    def sync_wallet(self, user_id: str, dry_run: bool = False) -> dict:
        """Rebuild a wallet's totals from its ledger; returns before/after."""
        wallet = self.wallet_repo.get_for_user(user_id)
        amount, points, weight = self.wallet_repo.ledger_totals(user_id)
        before = {
            "balance": _money(wallet.balance) if wallet else 0.0,
            "total_points": wallet.total_points if wallet else 0,
            "total_points_spent": wallet.total_points_spent if wallet else 0,
            "total_weight_kg": round(wallet.total_weight_kg, 3) if wallet else 0.0,
        }
        after = {
            "balance": max(0.0, _money(amount)),
            "total_points": points,
            "total_points_spent": self.wallet_repo.points_spent(user_id),
            "total_weight_kg": round(weight, 3),
        }
        if not dry_run:
            wallet = self.wallet_repo.get_or_create(user_id)
            wallet.balance = after["balance"]
            wallet.total_points = after["total_points"]
            wallet.total_points_spent = after["total_points_spent"]
            wallet.total_weight_kg = after["total_weight_kg"]
            wallet.updated_at = _now()
            self.session.add(wallet)
            self.session.commit()
        return {"user_id": user_id, "before": before, "after": after, "changed": before != after, "dry_run": dry_run}

    def redeem_reward(self, user_id: str, reward_id: str) -> models.WalletTransaction:
        """Spend points on a catalogue reward; the cash balance is untouched."""
        reward = repositories.RewardRepository(self.session).get(reward_id)
        if not reward or not reward.is_active:
            raise LookupError("reward not found")
        wallet = self.wallet_repo.get_or_create(user_id)
        available = (wallet.total_points or 0) - (wallet.total_points_spent or 0)
        if reward.points_required > available:
            raise ValueError(f"insufficient points (available {available})")
        wallet.total_points_spent = (wallet.total_points_spent or 0) + reward.points_required
        wallet.updated_at = _now()
        tx = models.WalletTransaction(
            user_id=user_id,
            amount=0.0,
            points=-reward.points_required,
            transaction_type="reward_redemption",
            source_type="reward",
            reference_id=reward.id,
            description=f"Redeemed reward: {reward.name}",
            balance_after=_money(wallet.balance),
        )
        self.session.add(wallet)
        self.wallet_repo.add_transaction(tx)
        self.session.commit()
        self.session.refresh(tx)
        return tx

    def list_wallets(self) -> List[dict]:
        wallets = self.wallet_repo.list_all()
        owners = self.user_repo.get_many(w.user_id for w in wallets)
        out = []
        for w in wallets:
            row = w.model_dump()
            row["user"] = _owner_block(owners.get(w.user_id))
            out.append(row)
        return out

    def ledger(self, user_id: Optional[str] = None, limit: int = 100) -> List[dict]:
        rows = self.wallet_repo.ledger(user_id=user_id, limit=max(1, min(limit, 1000)))
        owners = self.user_repo.get_many(t.user_id for t in rows)
        out = []
        for t in rows:
            row = t.model_dump()
            row["user"] = _owner_block(owners.get(t.user_id))
            out.append(row)
        return out


class GreenScholarService:
    """Green Scholar Fund: PET revenue, donations, scholars and disbursements."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.GreenScholarRepository(session)
        self.collection_repo = repositories.CollectionRepository(session)

    def process_pet_contribution(self, collection_id: str, actor: Optional[models.User] = None) -> dict:
        """Credit the fund with the PET share of a collection, at most once.

        PET lines are those whose material name contains "pet"; the amount
        is their total kg times the fixed PET rate.
        """
        if not self.collection_repo.get(collection_id):
            raise LookupError("collection not found")
        lines = self.collection_repo.lines_for([collection_id])
        pet_kg = sum(line.quantity or 0.0 for line, material in lines if "pet" in (material.name or "").lower())
        amount = _money(pet_kg * settings.PET_RATE_PER_KG)
        if amount <= 0:
            return {"ok": True, "created": False, "amount": 0}
        if self.repo.find_pet_contribution(collection_id):
            return {"ok": True, "created": False, "amount": amount}
        self.repo.add_transaction(models.GreenScholarTransaction(
            transaction_type="pet_contribution",
            amount=amount,
            source_type="collection",
            source_id=collection_id,
            description=f"PET contribution from collection {collection_id} @ C{settings.PET_RATE_PER_KG:.2f}/kg",
            created_by=actor.id if actor else None,
        ))
        record_activity(self.session, "pet_contribution_recorded", actor=actor, target_type="collection",
                        target_id=collection_id, details={"amount": amount, "pet_kg": pet_kg})
        return {"ok": True, "created": True, "amount": amount}

    def overview(self) -> dict:
        totals = self.repo.totals_by_type()
        pet = totals.get("pet_contribution", 0.0) + totals.get("pet_donation", 0.0)
        donations = totals.get("donation", 0.0) + totals.get("direct_donation", 0.0)
        disbursed = totals.get("distribution", 0.0) + totals.get("expense", 0.0)
        return {
            "totalPetRevenue": _money(pet),
            "totalCashDonations": _money(donations),
            "totalDisbursed": _money(disbursed),
            "remainingBalance": _money(pet + donations - disbursed),
        }

    def summary(self, scholar_id: str) -> dict:
        """Per-scholar impact card: recycling, points, funds received and tier."""
        users = repositories.UserRepository(self.session)
        scholar = self.repo.get_scholar(scholar_id)
        user = users.get(scholar_id) or (users.get(scholar.user_id) if scholar and scholar.user_id else None)
        customer_id = user.id if user else scholar_id
        collections = self.collection_repo.list_for_customer(customer_id, CREDITED_COLLECTION_STATUSES)
        total_kg = round(sum(c.total_weight_kg or 0.0 for c in collections), 3)
        _, points, _ = repositories.WalletRepository(self.session).ledger_totals(customer_id)
        funds = self.repo.received_by(scholar.id if scholar else scholar_id)
        name = (user.full_name if user and user.full_name else None) or (scholar.name if scholar else None) or "Unknown"
        return {
            "scholarId": scholar_id,
            "name": name,
            "school": (scholar.school if scholar and scholar.school else "—"),
            "grade": (scholar.grade if scholar and scholar.grade else "—"),
            "totalRecycledKg": total_kg,
            "points": points,
            "fundsReceived": _money(funds),
            "tier": scholar_tier(points),
        }

    def donate(self, amount: float, donor_name: Optional[str] = None, donor_email: Optional[str] = None, description: Optional[str] = None) -> models.GreenScholarTransaction:
        if amount is None or amount <= 0:
            raise ValueError("amount must be greater than 0")
        return self.repo.add_transaction(models.GreenScholarTransaction(
            transaction_type="donation",
            amount=_money(amount),
            source_type="donation",
            donor_name=donor_name,
            donor_email=donor_email,
            description=description or f"Donation from {donor_name or 'anonymous donor'}",
        ))

    def list_scholars(self, school: Optional[str] = None, grade: Optional[str] = None, region: Optional[str] = None) -> List[models.Scholar]:
        return self.repo.list_scholars(school=school, grade=grade, region=region)

    def add_scholar(self, name: str, school: Optional[str] = None, grade: Optional[str] = None, region: Optional[str] = None, user_id: Optional[str] = None) -> models.Scholar:
        if not name or not name.strip():
            raise ValueError("name required")
        return self.repo.add_scholar(models.Scholar(name=name.strip(), school=school, grade=grade, region=region, user_id=user_id))

    def list_disbursements(self) -> List[dict]:
        return [
            {
                "id": r.id,
                "scholar_id": r.beneficiary_id or "unknown",
                "scholar_name": r.beneficiary_name,
                "amount": _money(r.amount),
                "date": r.created_at,
                "purpose": r.description or "—",
            }
            for r in self.repo.list_distributions()
        ]

    def add_disbursement(self, scholar_id: str, amount: float, purpose: str, actor: Optional[models.User] = None) -> models.GreenScholarTransaction:
        """Pay out of the fund to a scholar; cannot exceed the remaining balance."""
        scholar = self.repo.get_scholar(scholar_id)
        if not scholar:
            raise LookupError("scholar not found")
        if amount is None or amount <= 0:
            raise ValueError("amount must be greater than 0")
        remaining = self.overview()["remainingBalance"]
        if _money(amount) > remaining:
            raise ValueError(f"insufficient fund balance (available C{remaining:.2f})")
        tx = self.repo.add_transaction(models.GreenScholarTransaction(
            transaction_type="distribution",
            amount=_money(amount),
            beneficiary_id=scholar.id,
            beneficiary_name=scholar.name,
            description=purpose or "Scholar disbursement",
            created_by=actor.id if actor else None,
        ))
        record_activity(self.session, "fund_disbursed", actor=actor, target_type="scholar", target_id=scholar.id,
                        details={"amount": tx.amount, "purpose": purpose})
        return tx

    def submit_application(self, **fields) -> models.GreenScholarApplication:
        if not (fields.get("full_name") or "").strip():
            raise ValueError("full_name required")
        return self.repo.create_application(models.GreenScholarApplication(**fields))

    def list_applications(self, status: Optional[str] = None) -> List[models.GreenScholarApplication]:
        if status in (None, "", "all"):
            status = None
        return self.repo.list_applications(status)

    def review_application(self, application_id: str, status: str, review_notes: Optional[str], actor: Optional[models.User] = None) -> models.GreenScholarApplication:
        """Record a review decision; approval registers the applicant as a scholar once."""
        if status not in APPLICATION_STATUSES:
            raise ValueError("Invalid status")
        application = self.repo.get_application(application_id)
        if not application:
            raise LookupError("application not found")
        application.status = status
        application.review_notes = review_notes
        application.reviewed_by = actor.id if actor else None
        application.reviewed_at = _now()
        application.updated_at = _now()
        if status == "approved" and not application.scholar_id:
            scholar = self.repo.add_scholar(models.Scholar(
                name=application.full_name,
                school=application.school_name,
                grade=application.grade,
                region=application.region,
            ))
            application.scholar_id = scholar.id
        application = self.repo.save_application(application)
        record_activity(self.session, "scholar_application_reviewed", actor=actor, target_type="application",
                        target_id=application.id, details={"status": status})
        return application


class CollectionService:
    """Pickup submission, approval and deletion."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.CollectionRepository(session)
        self.material_repo = repositories.MaterialRepository(session)
        self.user_repo = repositories.UserRepository(session)
        self.wallet_repo = repositories.WalletRepository(session)

    def _resolve_material(self, line: dict) -> models.Material:
        material = None
        if line.get("material_id"):
            material = self.material_repo.get(line["material_id"])
        elif line.get("material_name"):
            material = self.material_repo.get_by_name(line["material_name"])
        if not material:
            raise ValueError(f"unknown material: {line.get('material_id') or line.get('material_name')}")
        return material

    def submit(self, customer_id: str, lines: List[dict], collector: Optional[models.User] = None, notes: Optional[str] = None, photo_urls: Optional[List[str]] = None) -> models.Collection:
        """Record a collector's pickup with its material lines."""
        if not self.user_repo.get(customer_id):
            raise LookupError("customer not found")
        if not lines:
            raise ValueError("at least one material line is required")
        rows = []
        total_kg = 0.0
        total_value = 0.0
        for line in lines:
            quantity = float(line.get("quantity") or 0.0)
            if quantity <= 0:
                raise ValueError("material quantity must be greater than 0")
            material = self._resolve_material(line)
            unit_price = line.get("unit_price")
            if unit_price is None:
                unit_price = material.current_rate
            if unit_price < 0:
                raise ValueError("unit_price must be >= 0")
            rows.append(models.CollectionMaterial(collection_id="", material_id=material.id, quantity=quantity, unit_price=unit_price))
            total_kg += quantity
            total_value += quantity * unit_price
        collection = models.Collection(
            customer_id=customer_id,
            collector_id=collector.id if collector else None,
            status="submitted",
            total_weight_kg=round(total_kg, 3),
            computed_value=_money(total_value),
            notes=notes,
        )
        photos = [models.CollectionPhoto(collection_id="", photo_url=u) for u in (photo_urls or []) if u]
        return self.repo.create(collection, rows, photos)

    def collection_value(self, collection: models.Collection, lines) -> tuple:
        """Return `(value, weight_kg)` for crediting an approved collection.

        Each line is priced at its own unit price, falling back to the
        material's current rate; a collection without lines is priced at
        the default rate per kg.
        """
        if not lines:
            weight = collection.total_weight_kg or 0.0
            return _money(weight * settings.DEFAULT_MATERIAL_RATE), weight
        value = 0.0
        weight = 0.0
        for line, material in lines:
            rate = line.unit_price if line.unit_price is not None else (material.current_rate or 0.0)
            value += (line.quantity or 0.0) * rate
            weight += line.quantity or 0.0
        return _money(value), round(weight, 3)

    def to_dict(self, collection: models.Collection, lines=None, people: Optional[Dict[str, models.User]] = None) -> dict:
        people = people or {}
        row = collection.model_dump()
        customer = people.get(collection.customer_id)
        collector = people.get(collection.collector_id) if collection.collector_id else None
        row["customer_name"] = customer.full_name if customer else None
        row["customer_email"] = customer.email if customer else None
        row["collector_name"] = collector.full_name if collector else None
        row["materials"] = [
            {"material_id": m.id, "material_name": m.name, "quantity": line.quantity, "unit_price": line.unit_price}
            for line, m in (lines or [])
        ]
        return row

    def list(self, status: Optional[str] = None) -> List[dict]:
        if status in (None, "", "all"):
            status = None
        collections = self.repo.list(status)
        lines_by_collection: Dict[str, list] = {}
        for line, material in self.repo.lines_for(c.id for c in collections):
            lines_by_collection.setdefault(line.collection_id, []).append((line, material))
        people = self.user_repo.get_many(
            [c.customer_id for c in collections] + [c.collector_id for c in collections if c.collector_id]
        )
        return [self.to_dict(c, lines_by_collection.get(c.id), people) for c in collections]

    def update_status(self, collection_id: str, status: str, admin_notes: Optional[str] = None, actor: Optional[models.User] = None) -> dict:
        """Change a collection's status; approval credits the customer once.

        The status change, the wallet credit and the queue entry commit
        together. The PET contribution runs afterwards and only adds a
        `warning` when it fails.
        """
        if status not in COLLECTION_STATUSES:
            raise ValueError("Invalid status")
        collection = self.repo.get(collection_id)
        if not collection:
            raise LookupError("Collection not found")
        previous = collection.status
        newly_approved = status == "approved" and previous != "approved"
        collection.status = status
        if admin_notes is not None:
            collection.admin_notes = admin_notes or None
        collection.updated_at = _now()
        credited = None
        if newly_approved:
            collection.approved_at = _now()
            if not self.wallet_repo.has_collection_credit(collection.id):
                lines = self.repo.lines_for([collection.id])
                value, weight = self.collection_value(collection, lines)
                collection.computed_value = value
                collection.total_weight_kg = weight
                tx = WalletService(self.session).apply_transaction(
                    collection.customer_id,
                    value,
                    "collection_approval",
                    weight_kg=weight,
                    description=f"Collection approved - {weight:g}kg recycled",
                    source_type="collection",
                    source_id=collection.id,
                    commit=False,
                )
                self.repo.add_queue_entry(models.WalletUpdateQueue(
                    collection_id=collection.id, user_id=collection.customer_id, amount=tx.amount, points=tx.points,
                ))
                credited = {"amount": tx.amount, "points": tx.points, "balance_after": tx.balance_after}
        self.session.add(collection)
        self.session.commit()
        self.session.refresh(collection)
        record_activity(self.session, "collection_status_updated", actor=actor, target_type="collection",
                        target_id=collection.id, details={"from": previous, "to": status, "credited": credited})

        result = {"collection": collection.model_dump(), "success": True, "credited": credited}
        if newly_approved:
            try:
                result["pet_contribution"] = GreenScholarService(self.session).process_pet_contribution(collection.id, actor=actor)
            except SQLAlchemyError:
                self.session.rollback()
                logger.exception("pet_contribution_failed collection_id=%s", collection.id)
                result["warning"] = "Collection approved but PET contribution was not recorded"
        return result

    def delete(self, collection_id: str, actor: Optional[models.User] = None) -> dict:
        """Delete a collection and every row keyed by it in one transaction.

        Returns `{ok: False, reason: 'not_deleted', details}` when a
        follow-up check still finds linked rows.
        """
        collection = self.repo.get(collection_id)
        if not collection:
            raise LookupError("Collection not found")
        customer_id = collection.customer_id
        try:
            counts = self.repo.delete_cascade(collection_id)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        remaining = self.repo.remaining_links(collection_id)
        leftovers = [table for table, present in remaining.items() if present]
        if leftovers:
            logger.error("collection_delete_incomplete collection_id=%s remaining=%s", collection_id, leftovers)
            return {"ok": False, "reason": "not_deleted", "details": leftovers}
        if self.wallet_repo.get_for_user(customer_id):
            WalletService(self.session).sync_wallet(customer_id)
        record_activity(self.session, "collection_deleted", actor=actor, target_type="collection",
                        target_id=collection_id, details={"deleted": counts})
        return {"ok": True, "deleted": counts}


class WithdrawalService:
    """Cash-out requests and the wallet debits they cause."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.WithdrawalRepository(session)
        self.wallet_repo = repositories.WalletRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def request(self, user: models.User, amount: float, payout_method: Optional[str] = None, bank_details: Optional[str] = None) -> models.WithdrawalRequest:
        if amount is None or amount <= 0:
            raise ValueError("amount must be greater than 0")
        wallet = self.wallet_repo.get_for_user(user.id)
        balance = _money(wallet.balance) if wallet else 0.0
        if _money(amount) > balance:
            raise ValueError(f"insufficient balance (available C{balance:.2f})")
        return self.repo.create(models.WithdrawalRequest(
            user_id=user.id, amount=_money(amount), payout_method=payout_method, bank_details=bank_details,
        ))

    def list(self, status: Optional[str] = None) -> List[dict]:
        if status in (None, "", "all"):
            status = None
        rows = self.repo.list(status)
        owners = self.user_repo.get_many(w.user_id for w in rows)
        out = []
        for w in rows:
            row = w.model_dump()
            row["user"] = _owner_block(owners.get(w.user_id))
            out.append(row)
        return out

    def update_status(self, withdrawal_id: str, status: str, admin_notes: Optional[str] = None, payout_method: Optional[str] = None, actor: Optional[models.User] = None) -> dict:
        """Record an admin decision; approval debits the wallet once.

        A failed or impossible debit does not undo the decision; it is
        reported as `warning` instead.
        """
        if status not in WITHDRAWAL_STATUSES:
            raise ValueError("Invalid status")
        withdrawal = self.repo.get(withdrawal_id)
        if not withdrawal:
            raise LookupError("withdrawal not found")
        previous = withdrawal.status
        withdrawal.status = status
        if admin_notes is not None:
            withdrawal.notes = admin_notes or None
        withdrawal.updated_at = _now()
        if status in PROCESSED_WITHDRAWAL_STATUSES:
            withdrawal.processed_at = _now()
        if payout_method:
            withdrawal.payout_method = payout_method
        self.session.add(withdrawal)
        self.session.commit()
        self.session.refresh(withdrawal)

        result = {"withdrawal": withdrawal.model_dump(), "message": "Withdrawal status updated successfully"}
        if status == "approved" and previous != "approved" and not self.wallet_repo.has_reference(withdrawal.id, "withdrawal"):
            if self.wallet_repo.get_for_user(withdrawal.user_id) is None:
                logger.warning("withdrawal_wallet_missing withdrawal_id=%s user_id=%s", withdrawal.id, withdrawal.user_id)
                result.pop("message")
                result["warning"] = "Withdrawal approved but wallet balance not updated"
            else:
                try:
                    tx = WalletService(self.session).apply_transaction(
                        withdrawal.user_id,
                        -withdrawal.amount,
                        "withdrawal",
                        description=f"Withdrawal approved - {withdrawal.payout_method or 'bank_transfer'}",
                        source_type="withdrawal",
                        reference_id=withdrawal.id,
                    )
                    result["new_balance"] = tx.balance_after
                except SQLAlchemyError:
                    self.session.rollback()
                    logger.exception("withdrawal_wallet_debit_failed withdrawal_id=%s", withdrawal.id)
                    result.pop("message")
                    result["warning"] = "Withdrawal approved but wallet balance not updated"
        record_activity(self.session, "withdrawal_status_updated", actor=actor, target_type="withdrawal",
                        target_id=withdrawal.id, details={"from": previous, "to": status, "amount": withdrawal.amount})
        return result

    def delete(self, withdrawal_id: str, actor: Optional[models.User] = None) -> dict:
        """Remove a withdrawal and its ledger rows, then resync the wallet."""
        withdrawal = self.repo.get(withdrawal_id)
        if not withdrawal:
            raise LookupError("withdrawal not found")
        user_id = withdrawal.user_id
        try:
            removed = self.wallet_repo.delete_linked(withdrawal_id)
            self.session.delete(withdrawal)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        if removed and self.wallet_repo.get_for_user(user_id):
            WalletService(self.session).sync_wallet(user_id)
        record_activity(self.session, "withdrawal_deleted", actor=actor, target_type="withdrawal",
                        target_id=withdrawal_id, details={"deleted_transactions": removed})
        return {"ok": True, "deleted_transactions": removed}


class WatchAdsService:
    """Sponsored videos, daily watch limits and credit awards."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.WatchAdsRepository(session)

    @staticmethod
    def _start_of_day() -> datetime:
        now = _now()
        return datetime(now.year, now.month, now.day, tzinfo=timezone.utc)

    def watches_today(self, user_id: str, video: models.WatchAdsVideo) -> int:
        return self.repo.count_watches(user_id, video.id, since=self._start_of_day())

    def can_watch(self, user_id: str, video: models.WatchAdsVideo) -> bool:
        if not video.is_active:
            return False
        if self.watches_today(user_id, video) >= video.max_watches_per_day:
            return False
        if video.max_watches_total and self.repo.count_watches(user_id, video.id) >= video.max_watches_total:
            return False
        return True

    def list_videos(self, user_id: Optional[str] = None, admin_view: bool = False) -> List[dict]:
        videos = self.repo.list_videos(active_only=not admin_view)
        out = []
        for v in videos:
            row = v.model_dump()
            if user_id and not admin_view:
                row["can_watch"] = self.can_watch(user_id, v)
                row["watches_today"] = self.watches_today(user_id, v)
            out.append(row)
        return out

    def start_watch(self, user_id: str, video_id: str, ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> models.VideoWatch:
        if not repositories.UserRepository(self.session).get(user_id):
            raise LookupError("user not found")
        video = self.repo.get(video_id)
        if not video or not video.is_active:
            raise LookupError("video not found")
        if not self.can_watch(user_id, video):
            raise PermissionError("Daily watch limit reached for this video")
        return self.repo.save_watch(models.VideoWatch(
            user_id=user_id, video_id=video_id, ip_address=ip_address, user_agent=user_agent,
        ))

    def update_progress(self, watch_id: str, duration_seconds: int, percentage: float, is_completed: bool) -> dict:
        """Store progress; a completed, qualifying watch credits the wallet once."""
        watch = self.repo.get_watch(watch_id)
        if not watch:
            raise LookupError("watch not found")
        watch.watch_duration_seconds = duration_seconds
        watch.watch_percentage = percentage
        watch.updated_at = _now()
        if is_completed and watch.watch_completed_at is None:
            watch.watch_completed_at = _now()
        self.session.add(watch)
        if not (is_completed and not watch.is_qualified):
            self.session.commit()
            self.session.refresh(watch)
            return {"watch": watch.model_dump()}

        video = self.repo.get(watch.video_id)
        qualifies = (
            video is not None
            and percentage >= video.watch_percentage_required
            and duration_seconds >= video.watch_duration_seconds
        )
        if not qualifies:
            self.session.commit()
            self.session.refresh(watch)
            return {"watch": watch.model_dump(), "credits_awarded": None,
                    "error": "Watch did not meet the qualification requirements"}

        tx = WalletService(self.session).apply_transaction(
            watch.user_id,
            video.credit_amount,
            "watch_ad",
            description=f"Watched ad: {video.title}",
            source_type="video_watch",
            reference_id=watch.id,
            commit=False,
        )
        watch.is_qualified = True
        watch.credits_awarded = tx.amount
        self.session.add(watch)
        self.session.commit()
        self.session.refresh(watch)
        return {
            "watch": watch.model_dump(),
            "credits_awarded": tx.amount,
            "new_balance": tx.balance_after,
            "success": True,
            "message": f"Credits C {tx.amount:.2f} added to your wallet!",
        }

    def history(self, user_id: str, limit: int = 50) -> List[dict]:
        out = []
        for watch, video in self.repo.history(user_id, limit=limit):
            row = watch.model_dump()
            row["video"] = {"id": video.id, "title": video.title, "credit_amount": video.credit_amount, "thumbnail_url": video.thumbnail_url}
            out.append(row)
        return out

    def stats(self) -> dict:
        videos = self.repo.list_videos(active_only=False)
        watches = self.repo.all_watches()
        per_video = {v.id: {"video_id": v.id, "title": v.title, "watches": 0, "completed": 0, "qualified": 0, "credits_awarded": 0.0} for v in videos}
        for w in watches:
            entry = per_video.get(w.video_id)
            if entry is None:
                continue
            entry["watches"] += 1
            entry["completed"] += 1 if w.watch_completed_at else 0
            entry["qualified"] += 1 if w.is_qualified else 0
            entry["credits_awarded"] = _money(entry["credits_awarded"] + (w.credits_awarded or 0.0))
        return {
            "total_videos": len(videos),
            "active_videos": sum(1 for v in videos if v.is_active),
            "total_watches": len(watches),
            "completed_watches": sum(1 for w in watches if w.watch_completed_at),
            "qualified_watches": sum(1 for w in watches if w.is_qualified),
            "total_credits_awarded": _money(sum(w.credits_awarded or 0.0 for w in watches)),
            "videos": list(per_video.values()),
        }


ZERO_DASHBOARD = {
    "totalUsers": 0,
    "activeUsers": 0,
    "totalCollections": 0,
    "totalWeight": 0,
    "totalRevenue": 0,
    "pendingCollections": 0,
    "approvedCollections": 0,
    "totalPayments": 0,
    "pendingPayments": 0,
    "totalWallets": 0,
    "totalWalletBalance": 0,
    "totalPointsEarned": 0,
    "totalPointsSpent": 0,
    "greenScholarBalance": 0,
}


class DashboardService:
    """Headline counters for the office dashboard."""
    def __init__(self, session: Session):
        self.session = session
        self.stats_repo = repositories.StatsRepository(session)

    def stats(self) -> dict:
        s = self.stats_repo
        C = models.Collection
        W = models.WithdrawalRequest
        credited = C.status.in_(CREDITED_COLLECTION_STATUSES)
        return {
            "totalUsers": s.count(models.User),
            "activeUsers": s.count(models.User, models.User.status == "active"),
            "totalCollections": s.count(C),
            "totalWeight": round(s.total(C.total_weight_kg, credited), 3),
            "totalRevenue": _money(s.total(C.computed_value, credited)),
            "pendingCollections": s.count(C, C.status.in_(("pending", "submitted"))),
            "approvedCollections": s.count(C, C.status == "approved"),
            "totalPayments": s.count(W),
            "pendingPayments": s.count(W, W.status == "pending"),
            "totalWallets": s.count(models.Wallet),
            "totalWalletBalance": _money(s.total(models.Wallet.balance)),
            "totalPointsEarned": int(s.total(models.Wallet.total_points)),
            "totalPointsSpent": int(s.total(models.Wallet.total_points_spent)),
            "greenScholarBalance": GreenScholarService(self.session).overview()["remainingBalance"],
        }


EXPORT_COLUMNS = {
    "users": ("id", "email", "full_name", "phone", "role", "status", "created_at"),
    "collections": ("id", "customer_name", "customer_email", "collector_name", "status", "total_weight_kg", "computed_value", "created_at", "approved_at"),
    "withdrawals": ("id", "user_email", "user_name", "amount", "status", "payout_method", "created_at", "processed_at"),
    "transactions": ("id", "user_email", "user_name", "transaction_type", "amount", "points", "balance_after", "description", "created_at"),
}


class ExportService:
    """Flatten office lists into rows for CSV download."""
    def __init__(self, session: Session):
        self.session = session

    def rows(self, kind: str) -> List[dict]:
        if kind not in EXPORT_COLUMNS:
            raise ValueError(f"unknown export: {kind}")
        if kind == "users":
            return [user_to_dict(u) for u in repositories.UserRepository(self.session).list_all()]
        if kind == "collections":
            return CollectionService(self.session).list()
        if kind == "withdrawals":
            rows = WithdrawalService(self.session).list()
        else:
            rows = WalletService(self.session).ledger(limit=1000)
        for row in rows:
            owner = row.pop("user", None) or {}
            row["user_email"] = owner.get("email")
            row["user_name"] = owner.get("full_name")
        return rows


class CommunityEventService:
    """Community events for the Discover & Earn screen."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.CommunityEventRepository(session)

    @staticmethod
    def _check_status(status: Optional[str]) -> None:
        if status is not None and status not in EVENT_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(EVENT_STATUSES)}")

    def list(self, status: Optional[str] = None, from_date=None, to_date=None) -> List[models.CommunityEvent]:
        return self.repo.list_filtered(status or None, from_date, to_date)

    def create(self, fields: dict, actor: Optional[models.User] = None) -> models.CommunityEvent:
        if not (fields.get("title") or "").strip():
            raise ValueError("Missing required fields: title and event_date are required")
        self._check_status(fields.get("status"))
        event = self.repo.create(models.CommunityEvent(**fields))
        record_activity(self.session, "community_event_created", actor=actor, target_type="community_event",
                        target_id=event.id, details={"title": event.title, "event_date": event.event_date})
        return event

    def update(self, event_id: str, changes: dict) -> models.CommunityEvent:
        event = self.repo.get(event_id)
        if not event:
            raise LookupError("event not found")
        self._check_status(changes.get("status"))
        for key, value in changes.items():
            if value is not None:
                setattr(event, key, value)
        event.updated_at = _now()
        return self.repo.save(event)

    def delete(self, event_id: str) -> None:
        event = self.repo.get(event_id)
        if not event:
            raise LookupError("event not found")
        self.repo.delete(event)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class ExportRequestService:
    """Exports go through a request, a manager's decision and a one-hour window.

    Any office user may ask for an export; super admins and admin managers
    approve or reject it. An approved request can be executed by its
    requester (or an approver) until it expires.
    """
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.ExportRequestRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def create(self, user: models.User, export_type: str, report_title: str, filename: str, request_data: Optional[dict] = None) -> models.ExportRequest:
        if not (export_type and (report_title or "").strip() and (filename or "").strip()):
            raise ValueError("Missing required fields")
        if export_type not in EXPORT_COLUMNS:
            raise ValueError(f"unknown export: {export_type}")
        req = self.repo.create(models.ExportRequest(
            requested_by=user.id,
            export_type=export_type,
            report_title=report_title.strip(),
            filename=filename.strip(),
            request_data=json.dumps(request_data or {}, default=str),
            expires_at=_now() + EXPORT_REQUEST_TTL,
        ))
        record_activity(self.session, "export_requested", actor=user, target_type="export_request",
                        target_id=req.id, details={"export_type": export_type})
        return req

    def get(self, request_id: str) -> models.ExportRequest:
        req = self.repo.get(request_id)
        if not req:
            raise LookupError("Export request not found")
        return req

    def list_for(self, user: models.User) -> List[models.ExportRequest]:
        """Approvers see the pending queue; everyone else sees their own requests."""
        if can_approve_exports(user):
            return self.repo.list_by_status("pending")
        return self.repo.list_for_requester(user.id)

    def to_dict(self, req: models.ExportRequest, people: Optional[Dict[str, models.User]] = None) -> dict:
        if people is None:
            people = self.user_repo.get_many([req.requested_by, req.approved_by])
        row = req.model_dump()
        row["request_data"] = json.loads(req.request_data) if req.request_data else {}
        row["requested_by_user"] = _owner_block(people.get(req.requested_by))
        row["approved_by_user"] = _owner_block(people.get(req.approved_by)) if req.approved_by else None
        return row

    def to_dicts(self, rows: List[models.ExportRequest]) -> List[dict]:
        people = self.user_repo.get_many([r.requested_by for r in rows] + [r.approved_by for r in rows])
        return [self.to_dict(r, people) for r in rows]

    def decide(self, request_id: str, status: str, rejection_reason: Optional[str], actor: models.User) -> models.ExportRequest:
        if not can_approve_exports(actor):
            raise PermissionError("Forbidden - SuperAdmin or AdminManager access required")
        if status not in EXPORT_DECISIONS:
            raise ValueError("Invalid status")
        req = self.get(request_id)
        if req.status != "pending":
            raise ConflictError(f"export request already {req.status}")
        req.status = status
        req.approved_by = actor.id
        req.approved_at = _now()
        req.updated_at = _now()
        if status == "rejected" and rejection_reason:
            req.rejection_reason = rejection_reason
        req = self.repo.save(req)
        record_activity(self.session, f"export_{status}", actor=actor, target_type="export_request",
                        target_id=req.id, details={"export_type": req.export_type})
        return req

    def execute(self, request_id: str, user: models.User) -> tuple:
        """Return `(request, rows)` for an approved, unexpired request."""
        req = self.get(request_id)
        if req.status != "approved":
            raise ValueError("Export request is not approved")
        if user.id != req.requested_by and not can_approve_exports(user):
            raise PermissionError("only the requester can run this export")
        if _aware(req.expires_at) <= _now():
            raise ExpiredError("Export request has expired")
        rows = ExportService(self.session).rows(req.export_type)
        record_activity(self.session, "export_executed", actor=user, target_type="export_request",
                        target_id=req.id, details={"export_type": req.export_type, "rows": len(rows)})
        return req, rows


class DiscoverEarnService:
    """Discover & Earn cards; one card per card type."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.DiscoverEarnRepository(session)

    def upsert(self, fields: dict) -> models.DiscoverEarnCard:
        """Create the card for `card_type`, or overwrite the existing one."""
        card_type = fields.get("card_type")
        if not (card_type and (fields.get("title") or "").strip() and (fields.get("image_url") or "").strip()):
            raise ValueError("Missing required fields: card_type, image_url, and title are required")
        if card_type not in DISCOVER_CARD_TYPES:
            raise ValueError(f"Invalid card_type. Must be one of: {', '.join(DISCOVER_CARD_TYPES)}")
        card = self.repo.get_by_type(card_type) or models.DiscoverEarnCard(card_type=card_type, title="", image_url="")
        for key, value in fields.items():
            setattr(card, key, value)
        card.updated_at = _now()
        return self.repo.save(card)
