"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
collections, wallets, withdrawals, the Green Scholar ledger, content,
videos). Repositories return SQLModel objects. Simple `create`/`save`
helpers commit immediately; methods documented as "no commit" only stage
changes so a service can group several of them into one transaction.
"""

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple
from sqlmodel import Session, select
from sqlalchemy import case, delete, func
from . import models


class CrudRepository:
    """Generic list/get/create/save/delete for simple content tables."""
    model = None
    order_by = None

    def __init__(self, session: Session):
        self.session = session

    def list(self) -> list:
        stmt = select(self.model)
        if self.order_by is not None:
            stmt = stmt.order_by(self.order_by)
        return self.session.exec(stmt).all()

    def get(self, row_id: str):
        return self.session.get(self.model, row_id)

    def create(self, row):
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    save = create

    def delete(self, row) -> None:
        self.session.delete(row)
        self.session.commit()


class RoleRepository:
    """Lookups in the role catalogue."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, role_id: str) -> Optional[models.Role]:
        return self.session.get(models.Role, role_id)

    def get_by_name(self, name: str) -> Optional[models.Role]:
        """Exact name match (the catalogue may hold lower- or upper-case names)."""
        stmt = select(models.Role).where(models.Role.name == name)
        return self.session.exec(stmt).first()

    def list(self) -> List[models.Role]:
        return self.session.exec(select(models.Role).order_by(models.Role.name)).all()

    def role_name_for(self, user: models.User) -> str:
        """The user's `role` column, falling back to the catalogue row behind `role_id`."""
        if user.role:
            return user.role
        if user.role_id:
            role = self.get(user.role_id)
            if role:
                return role.name
        return ""


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    save = create

    def get(self, user_id: str) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email (case-insensitive) or `None`."""
        stmt = select(models.User).where(func.lower(models.User.email) == email.strip().lower())
        return self.session.exec(stmt).first()

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, models.User]:
        """Return `{id: user}` for the ids that exist."""
        ids = {i for i in user_ids if i}
        if not ids:
            return {}
        stmt = select(models.User).where(models.User.id.in_(ids))
        return {u.id: u for u in self.session.exec(stmt).all()}

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.User)).one()

    def list_page(self, offset: int, limit: int) -> List[models.User]:
        """Return one page of users, newest first."""
        stmt = select(models.User).order_by(models.User.created_at.desc()).offset(offset).limit(limit)
        return self.session.exec(stmt).all()

    def list_all(self) -> List[models.User]:
        return self.session.exec(select(models.User).order_by(models.User.created_at.desc())).all()

    def list_by_status(self, status: str) -> List[models.User]:
        stmt = select(models.User).where(models.User.status == status).order_by(models.User.created_at.desc())
        return self.session.exec(stmt).all()


class MaterialRepository:
    """Material catalogue with per-kg rates."""
    def __init__(self, session: Session):
        self.session = session

    def list(self) -> List[models.Material]:
        return self.session.exec(select(models.Material).order_by(models.Material.name)).all()

    def get(self, material_id: str) -> Optional[models.Material]:
        return self.session.get(models.Material, material_id)

    def get_by_name(self, name: str) -> Optional[models.Material]:
        stmt = select(models.Material).where(func.lower(models.Material.name) == name.strip().lower())
        return self.session.exec(stmt).first()

    def create(self, material: models.Material) -> models.Material:
        self.session.add(material)
        self.session.commit()
        self.session.refresh(material)
        return material

    save = create


class CollectionRepository:
    """Collections with their material lines, photos and queue entries."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, collection: models.Collection, lines: List[models.CollectionMaterial], photos: List[models.CollectionPhoto]) -> models.Collection:
        """Store a collection and attach its lines and photos in one commit."""
        self.session.add(collection)
        self.session.flush()
        for line in lines:
            line.collection_id = collection.id
            self.session.add(line)
        for photo in photos:
            photo.collection_id = collection.id
            self.session.add(photo)
        self.session.commit()
        self.session.refresh(collection)
        return collection

    def get(self, collection_id: str) -> Optional[models.Collection]:
        return self.session.get(models.Collection, collection_id)

    def save(self, collection: models.Collection) -> models.Collection:
        self.session.add(collection)
        self.session.commit()
        self.session.refresh(collection)
        return collection

    def list(self, status: Optional[str] = None) -> List[models.Collection]:
        """All collections newest first, optionally restricted to one status."""
        stmt = select(models.Collection)
        if status:
            stmt = stmt.where(models.Collection.status == status)
        return self.session.exec(stmt.order_by(models.Collection.created_at.desc())).all()

    def list_for_customer(self, customer_id: str, statuses: Iterable[str]) -> List[models.Collection]:
        stmt = select(models.Collection).where(
            models.Collection.customer_id == customer_id,
            models.Collection.status.in_(list(statuses)),
        )
        return self.session.exec(stmt).all()

    def lines_for(self, collection_ids: Iterable[str]) -> List[Tuple[models.CollectionMaterial, models.Material]]:
        """Material lines joined with their material rows."""
        ids = list(collection_ids)
        if not ids:
            return []
        stmt = (
            select(models.CollectionMaterial, models.Material)
            .join(models.Material, models.Material.id == models.CollectionMaterial.material_id)
            .where(models.CollectionMaterial.collection_id.in_(ids))
        )
        return self.session.exec(stmt).all()

    def photos_for(self, collection_id: str) -> List[models.CollectionPhoto]:
        stmt = select(models.CollectionPhoto).where(models.CollectionPhoto.collection_id == collection_id)
        return self.session.exec(stmt).all()

    def add_queue_entry(self, entry: models.WalletUpdateQueue) -> None:
        """Stage a wallet update queue row (no commit)."""
        self.session.add(entry)

    def delete_cascade(self, collection_id: str) -> Dict[str, int]:
        """Stage deletion of a collection and every row keyed by it (no commit).

        Children are removed before the parent so foreign keys hold on
        Postgres. Returns the number of rows removed per table.
        """
        statements = [
            ("collection_photos", delete(models.CollectionPhoto).where(models.CollectionPhoto.collection_id == collection_id)),
            ("collection_materials", delete(models.CollectionMaterial).where(models.CollectionMaterial.collection_id == collection_id)),
            ("wallet_update_queue", delete(models.WalletUpdateQueue).where(models.WalletUpdateQueue.collection_id == collection_id)),
            ("green_scholar_transactions", delete(models.GreenScholarTransaction).where(
                models.GreenScholarTransaction.source_type == "collection",
                models.GreenScholarTransaction.source_id == collection_id,
            )),
            ("wallet_transactions", delete(models.WalletTransaction).where(models.WalletTransaction.source_id == collection_id)),
            ("unified_collections", delete(models.Collection).where(models.Collection.id == collection_id)),
        ]
        counts = {}
        for table, stmt in statements:
            result = self.session.execute(stmt)
            counts[table] = result.rowcount or 0
        return counts

    def remaining_links(self, collection_id: str) -> Dict[str, bool]:
        """Report which tables still hold rows for `collection_id`."""
        checks = {
            "unified_collections": select(models.Collection.id).where(models.Collection.id == collection_id),
            "collection_materials": select(models.CollectionMaterial.id).where(models.CollectionMaterial.collection_id == collection_id),
            "collection_photos": select(models.CollectionPhoto.id).where(models.CollectionPhoto.collection_id == collection_id),
            "wallet_update_queue": select(models.WalletUpdateQueue.id).where(models.WalletUpdateQueue.collection_id == collection_id),
            "wallet_transactions": select(models.WalletTransaction.id).where(models.WalletTransaction.source_id == collection_id),
            "green_scholar_transactions": select(models.GreenScholarTransaction.id).where(
                models.GreenScholarTransaction.source_type == "collection",
                models.GreenScholarTransaction.source_id == collection_id,
            ),
        }
        return {table: self.session.exec(stmt.limit(1)).first() is not None for table, stmt in checks.items()}


class WalletRepository:
    """Wallet rows and the wallet transaction ledger."""
    def __init__(self, session: Session):
        self.session = session

    def get_for_user(self, user_id: str) -> Optional[models.Wallet]:
        stmt = select(models.Wallet).where(models.Wallet.user_id == user_id)
        return self.session.exec(stmt).first()

    def get_or_create(self, user_id: str) -> models.Wallet:
        """Return the user's wallet, staging an empty one if missing (no commit)."""
        wallet = self.get_for_user(user_id)
        if wallet is None:
            wallet = models.Wallet(user_id=user_id)
            self.session.add(wallet)
            self.session.flush()
        return wallet

    def list_all(self) -> List[models.Wallet]:
        return self.session.exec(select(models.Wallet).order_by(models.Wallet.balance.desc())).all()

    def add_transaction(self, tx: models.WalletTransaction) -> None:
        """Stage a ledger row (no commit)."""
        self.session.add(tx)

    def ledger(self, user_id: Optional[str] = None, limit: int = 100) -> List[models.WalletTransaction]:
        """Ledger rows newest first, optionally for a single user."""
        stmt = select(models.WalletTransaction)
        if user_id:
            stmt = stmt.where(models.WalletTransaction.user_id == user_id)
        stmt = stmt.order_by(models.WalletTransaction.created_at.desc()).limit(limit)
        return self.session.exec(stmt).all()

    def ledger_totals(self, user_id: str) -> Tuple[float, int, float]:
        """Return `(sum(amount), points earned, sum(weight_kg))` for a user.

        Redemptions are negative point rows and do not reduce points earned.
        """
        points = models.WalletTransaction.points
        stmt = select(
            func.coalesce(func.sum(models.WalletTransaction.amount), 0.0),
            func.coalesce(func.sum(case((points > 0, points), else_=0)), 0),
            func.coalesce(func.sum(models.WalletTransaction.weight_kg), 0.0),
        ).where(models.WalletTransaction.user_id == user_id)
        amount, earned, weight = self.session.exec(stmt).one()
        return float(amount or 0.0), int(earned or 0), float(weight or 0.0)

    def points_spent(self, user_id: str) -> int:
        stmt = select(func.coalesce(func.sum(models.WalletTransaction.points), 0)).where(
            models.WalletTransaction.user_id == user_id,
            models.WalletTransaction.points < 0,
        )
        return abs(int(self.session.exec(stmt).one() or 0))

    def has_collection_credit(self, collection_id: str) -> bool:
        stmt = select(models.WalletTransaction.id).where(
            models.WalletTransaction.source_id == collection_id,
            models.WalletTransaction.transaction_type == "collection_approval",
        )
        return self.session.exec(stmt.limit(1)).first() is not None

    def has_reference(self, reference_id: str, transaction_type: str) -> bool:
        stmt = select(models.WalletTransaction.id).where(
            models.WalletTransaction.reference_id == reference_id,
            models.WalletTransaction.transaction_type == transaction_type,
        )
        return self.session.exec(stmt.limit(1)).first() is not None

    def delete_linked(self, linked_id: str) -> int:
        """Stage deletion of ledger rows linked by source or reference id (no commit)."""
        result = self.session.execute(
            delete(models.WalletTransaction).where(
                (models.WalletTransaction.source_id == linked_id) | (models.WalletTransaction.reference_id == linked_id)
            )
        )
        return result.rowcount or 0


class WithdrawalRepository:
    """Persist and query cash-out requests."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, withdrawal: models.WithdrawalRequest) -> models.WithdrawalRequest:
        self.session.add(withdrawal)
        self.session.commit()
        self.session.refresh(withdrawal)
        return withdrawal

    def get(self, withdrawal_id: str) -> Optional[models.WithdrawalRequest]:
        return self.session.get(models.WithdrawalRequest, withdrawal_id)

    def list(self, status: Optional[str] = None) -> List[models.WithdrawalRequest]:
        stmt = select(models.WithdrawalRequest)
        if status:
            stmt = stmt.where(models.WithdrawalRequest.status == status)
        return self.session.exec(stmt.order_by(models.WithdrawalRequest.created_at.desc())).all()


class GreenScholarRepository:
    """Green Scholar Fund ledger, scholars and applications."""
    def __init__(self, session: Session):
        self.session = session

    def add_transaction(self, tx: models.GreenScholarTransaction) -> models.GreenScholarTransaction:
        self.session.add(tx)
        self.session.commit()
        self.session.refresh(tx)
        return tx

    def find_pet_contribution(self, collection_id: str) -> Optional[models.GreenScholarTransaction]:
        stmt = select(models.GreenScholarTransaction).where(
            models.GreenScholarTransaction.source_type == "collection",
            models.GreenScholarTransaction.source_id == collection_id,
            models.GreenScholarTransaction.transaction_type == "pet_contribution",
        )
        return self.session.exec(stmt.limit(1)).first()

    def totals_by_type(self) -> Dict[str, float]:
        stmt = select(
            models.GreenScholarTransaction.transaction_type,
            func.coalesce(func.sum(models.GreenScholarTransaction.amount), 0.0),
        ).group_by(models.GreenScholarTransaction.transaction_type)
        return {t: float(total or 0.0) for t, total in self.session.exec(stmt).all()}

    def received_by(self, beneficiary_id: str) -> float:
        stmt = select(func.coalesce(func.sum(models.GreenScholarTransaction.amount), 0.0)).where(
            models.GreenScholarTransaction.beneficiary_id == beneficiary_id,
            models.GreenScholarTransaction.transaction_type.in_(["distribution", "expense"]),
        )
        return float(self.session.exec(stmt).one() or 0.0)

    def list_distributions(self) -> List[models.GreenScholarTransaction]:
        stmt = select(models.GreenScholarTransaction).where(
            models.GreenScholarTransaction.transaction_type.in_(["distribution", "expense"])
        ).order_by(models.GreenScholarTransaction.created_at.desc())
        return self.session.exec(stmt).all()

    def list_scholars(self, school: Optional[str] = None, grade: Optional[str] = None, region: Optional[str] = None) -> List[models.Scholar]:
        stmt = select(models.Scholar)
        if school:
            stmt = stmt.where(models.Scholar.school == school)
        if grade:
            stmt = stmt.where(models.Scholar.grade == grade)
        if region:
            stmt = stmt.where(models.Scholar.region == region)
        return self.session.exec(stmt.order_by(models.Scholar.name)).all()

    def get_scholar(self, scholar_id: str) -> Optional[models.Scholar]:
        return self.session.get(models.Scholar, scholar_id)

    def add_scholar(self, scholar: models.Scholar) -> models.Scholar:
        self.session.add(scholar)
        self.session.commit()
        self.session.refresh(scholar)
        return scholar

    def create_application(self, application: models.GreenScholarApplication) -> models.GreenScholarApplication:
        self.session.add(application)
        self.session.commit()
        self.session.refresh(application)
        return application

    save_application = create_application

    def get_application(self, application_id: str) -> Optional[models.GreenScholarApplication]:
        return self.session.get(models.GreenScholarApplication, application_id)

    def list_applications(self, status: Optional[str] = None) -> List[models.GreenScholarApplication]:
        stmt = select(models.GreenScholarApplication)
        if status:
            stmt = stmt.where(models.GreenScholarApplication.status == status)
        return self.session.exec(stmt.order_by(models.GreenScholarApplication.created_at.desc())).all()


class HeroSlideRepository(CrudRepository):
    model = models.HeroSlide
    order_by = models.HeroSlide.display_order

    def list_active(self) -> List[models.HeroSlide]:
        stmt = select(models.HeroSlide).where(models.HeroSlide.is_active == True).order_by(models.HeroSlide.display_order)  # noqa: E712
        return self.session.exec(stmt).all()


class RewardRepository(CrudRepository):
    model = models.Reward
    order_by = models.Reward.points_required


class CommunityEventRepository(CrudRepository):
    model = models.CommunityEvent

    def list_filtered(self, status: Optional[str] = None, from_date: Optional[date] = None, to_date: Optional[date] = None) -> List[models.CommunityEvent]:
        E = models.CommunityEvent
        stmt = select(E)
        if status:
            stmt = stmt.where(E.status == status)
        if from_date:
            stmt = stmt.where(E.event_date >= from_date)
        if to_date:
            stmt = stmt.where(E.event_date <= to_date)
        return self.session.exec(stmt.order_by(E.event_date, E.start_time, E.created_at.desc())).all()


class ExportRequestRepository(CrudRepository):
    """Export requests; queues hold at most 50 rows, newest first."""
    model = models.ExportRequest

    def list_by_status(self, status: str, limit: int = 50) -> List[models.ExportRequest]:
        R = models.ExportRequest
        stmt = select(R).where(R.status == status).order_by(R.created_at.desc()).limit(limit)
        return self.session.exec(stmt).all()

    def list_for_requester(self, user_id: str, limit: int = 50) -> List[models.ExportRequest]:
        R = models.ExportRequest
        stmt = select(R).where(R.requested_by == user_id).order_by(R.created_at.desc()).limit(limit)
        return self.session.exec(stmt).all()


class DiscoverEarnRepository(CrudRepository):
    model = models.DiscoverEarnCard

    def list(self) -> List[models.DiscoverEarnCard]:
        C = models.DiscoverEarnCard
        return self.session.exec(select(C).order_by(C.display_order, C.created_at.desc())).all()

    def get_by_type(self, card_type: str) -> Optional[models.DiscoverEarnCard]:
        stmt = select(models.DiscoverEarnCard).where(models.DiscoverEarnCard.card_type == card_type)
        return self.session.exec(stmt).first()


class WatchAdsRepository(CrudRepository):
    """Sponsored videos and the watch records against them."""
    model = models.WatchAdsVideo
    order_by = models.WatchAdsVideo.display_order

    def list_videos(self, active_only: bool = True) -> List[models.WatchAdsVideo]:
        stmt = select(models.WatchAdsVideo)
        if active_only:
            stmt = stmt.where(models.WatchAdsVideo.is_active == True)  # noqa: E712
        return self.session.exec(stmt.order_by(models.WatchAdsVideo.display_order)).all()

    def count_watches(self, user_id: str, video_id: str, since: Optional[datetime] = None) -> int:
        stmt = select(func.count()).select_from(models.VideoWatch).where(
            models.VideoWatch.user_id == user_id,
            models.VideoWatch.video_id == video_id,
        )
        if since is not None:
            stmt = stmt.where(models.VideoWatch.created_at >= since)
        return self.session.exec(stmt).one()

    def count_watches_for_video(self, video_id: str) -> int:
        stmt = select(func.count()).select_from(models.VideoWatch).where(models.VideoWatch.video_id == video_id)
        return self.session.exec(stmt).one()

    def get_watch(self, watch_id: str) -> Optional[models.VideoWatch]:
        return self.session.get(models.VideoWatch, watch_id)

    def save_watch(self, watch: models.VideoWatch) -> models.VideoWatch:
        self.session.add(watch)
        self.session.commit()
        self.session.refresh(watch)
        return watch

    def history(self, user_id: str, limit: int = 50) -> List[Tuple[models.VideoWatch, models.WatchAdsVideo]]:
        stmt = (
            select(models.VideoWatch, models.WatchAdsVideo)
            .join(models.WatchAdsVideo, models.WatchAdsVideo.id == models.VideoWatch.video_id)
            .where(models.VideoWatch.user_id == user_id)
            .order_by(models.VideoWatch.created_at.desc())
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def all_watches(self) -> List[models.VideoWatch]:
        return self.session.exec(select(models.VideoWatch)).all()


class ActivityRepository:
    """Append-only admin activity log."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, entry: models.AdminActivity) -> models.AdminActivity:
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        return entry

    def list(self, limit: int = 100) -> List[models.AdminActivity]:
        stmt = select(models.AdminActivity).order_by(models.AdminActivity.created_at.desc()).limit(limit)
        return self.session.exec(stmt).all()


class StatsRepository:
    """Aggregate queries for the dashboard."""
    def __init__(self, session: Session):
        self.session = session

    def count(self, model, *where) -> int:
        stmt = select(func.count()).select_from(model)
        if where:
            stmt = stmt.where(*where)
        return int(self.session.exec(stmt).one() or 0)

    def total(self, column, *where) -> float:
        stmt = select(func.coalesce(func.sum(column), 0))
        if where:
            stmt = stmt.where(*where)
        return float(self.session.exec(stmt).one() or 0)
