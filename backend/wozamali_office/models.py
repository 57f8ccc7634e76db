"""SQLModel data models.

This module defines the office's database tables using SQLModel. Table
names match the hosted schema (`users`, `unified_collections`,
`wallet_transactions`, ...) so the same models work against Supabase's
Postgres and against the local SQLite file used in development.
"""

import uuid
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import date, datetime, timezone


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


DEFAULT_ROLES = (
    ("super_admin", "Full access including team management and deletions"),
    ("admin", "Office administrator"),
    ("admin_manager", "Office manager"),
    ("staff", "Office staff"),
    ("collector", "Field collector submitting pickups"),
    ("resident", "Recycling customer"),
)


class Role(SQLModel, table=True):
    """A named role; `users.role` mirrors `roles.name` for quick checks."""
    __tablename__ = "roles"
    id: str = Field(default_factory=_uuid, primary_key=True)
    name: str = Field(index=True, unique=True)
    description: Optional[str] = None


class User(SQLModel, table=True):
    """An office or app user.

    Fields:
    - `email`: unique login email
    - `role` / `role_id`: denormalised role name and its `roles` row
    - `status`: `active`, `pending`, `suspended` or `inactive`
    - `password_hash`: passlib hash, empty for users that only sign in
      through the hosted auth service
    """
    __tablename__ = "users"
    id: str = Field(default_factory=_uuid, primary_key=True)
    email: str = Field(index=True, unique=True)
    full_name: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    status: str = Field(default="active", index=True)
    role: Optional[str] = Field(default="resident", index=True)
    role_id: Optional[str] = Field(default=None, foreign_key="roles.id")
    is_approved: bool = True
    password_hash: Optional[str] = None
    street_addr: Optional[str] = None
    suburb: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Material(SQLModel, table=True):
    """A recyclable material and its current rate per kg."""
    __tablename__ = "materials"
    id: str = Field(default_factory=_uuid, primary_key=True)
    name: str = Field(index=True, unique=True)
    category: Optional[str] = None
    current_rate: float = 0.0
    is_active: bool = True
    created_at: datetime = Field(default_factory=_now)


class Collection(SQLModel, table=True):
    """A recorded recycling pickup submitted by a collector."""
    __tablename__ = "unified_collections"
    id: str = Field(default_factory=_uuid, primary_key=True)
    customer_id: str = Field(foreign_key="users.id", index=True)
    collector_id: Optional[str] = Field(default=None, foreign_key="users.id", index=True)
    status: str = Field(default="submitted", index=True)
    total_weight_kg: float = 0.0
    computed_value: float = 0.0
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class CollectionMaterial(SQLModel, table=True):
    """One material line of a collection (kg and the unit price used)."""
    __tablename__ = "collection_materials"
    id: str = Field(default_factory=_uuid, primary_key=True)
    collection_id: str = Field(foreign_key="unified_collections.id", index=True)
    material_id: str = Field(foreign_key="materials.id")
    quantity: float = 0.0
    unit_price: Optional[float] = None


class CollectionPhoto(SQLModel, table=True):
    __tablename__ = "collection_photos"
    id: str = Field(default_factory=_uuid, primary_key=True)
    collection_id: str = Field(foreign_key="unified_collections.id", index=True)
    photo_url: str
    created_at: datetime = Field(default_factory=_now)


class WalletUpdateQueue(SQLModel, table=True):
    """Wallet credit notice written on approval for the resident app history."""
    __tablename__ = "wallet_update_queue"
    id: str = Field(default_factory=_uuid, primary_key=True)
    collection_id: str = Field(foreign_key="unified_collections.id", index=True)
    user_id: str = Field(foreign_key="users.id")
    amount: float = 0.0
    points: int = 0
    status: str = "processed"
    created_at: datetime = Field(default_factory=_now)


class Wallet(SQLModel, table=True):
    """Per-user running balance; kept equal to the sum of its ledger."""
    __tablename__ = "wallets"
    id: str = Field(default_factory=_uuid, primary_key=True)
    user_id: str = Field(foreign_key="users.id", unique=True, index=True)
    balance: float = 0.0
    total_points: int = 0
    total_points_spent: int = 0
    total_weight_kg: float = 0.0
    updated_at: datetime = Field(default_factory=_now)


class WalletTransaction(SQLModel, table=True):
    """A ledger row. `source_id` links collections; `reference_id` links withdrawals and watches."""
    __tablename__ = "wallet_transactions"
    id: str = Field(default_factory=_uuid, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    amount: float = 0.0
    points: int = 0
    weight_kg: float = 0.0
    transaction_type: str = Field(index=True)
    source_type: Optional[str] = None
    source_id: Optional[str] = Field(default=None, index=True)
    reference_id: Optional[str] = Field(default=None, index=True)
    description: Optional[str] = None
    balance_after: Optional[float] = None
    created_at: datetime = Field(default_factory=_now)


class WithdrawalRequest(SQLModel, table=True):
    """A user-initiated cash-out request awaiting an admin decision."""
    __tablename__ = "withdrawal_requests"
    id: str = Field(default_factory=_uuid, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    amount: float
    status: str = Field(default="pending", index=True)
    payout_method: Optional[str] = None
    bank_details: Optional[str] = None
    notes: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class GreenScholarTransaction(SQLModel, table=True):
    """Green Scholar Fund ledger.

    `transaction_type` is `pet_contribution`, `donation` or `distribution`.
    PET contributions carry `source_type='collection'` and the collection id.
    """
    __tablename__ = "green_scholar_transactions"
    id: str = Field(default_factory=_uuid, primary_key=True)
    transaction_type: str = Field(index=True)
    amount: float = 0.0
    source_type: Optional[str] = None
    source_id: Optional[str] = Field(default=None, index=True)
    beneficiary_id: Optional[str] = Field(default=None, index=True)
    beneficiary_name: Optional[str] = None
    donor_name: Optional[str] = None
    donor_email: Optional[str] = None
    description: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


class Scholar(SQLModel, table=True):
    __tablename__ = "scholars"
    id: str = Field(default_factory=_uuid, primary_key=True)
    user_id: Optional[str] = Field(default=None, index=True)
    name: str
    school: Optional[str] = None
    grade: Optional[str] = None
    region: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


class GreenScholarApplication(SQLModel, table=True):
    """A bursary application reviewed by the office."""
    __tablename__ = "green_scholar_applications"
    id: str = Field(default_factory=_uuid, primary_key=True)
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    school_name: Optional[str] = None
    grade: Optional[str] = None
    region: Optional[str] = None
    motivation: Optional[str] = None
    status: str = Field(default="pending", index=True)
    review_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    scholar_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class HeroSlide(SQLModel, table=True):
    __tablename__ = "hero_slides"
    id: str = Field(default_factory=_uuid, primary_key=True)
    title: str
    subtitle: Optional[str] = None
    image_url: str
    link_url: Optional[str] = None
    button_text: Optional[str] = None
    display_order: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Reward(SQLModel, table=True):
    __tablename__ = "rewards"
    id: str = Field(default_factory=_uuid, primary_key=True)
    name: str
    description: Optional[str] = None
    points_required: int = 0
    category: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class WatchAdsVideo(SQLModel, table=True):
    """A sponsored video residents can watch for wallet credits."""
    __tablename__ = "watch_ads_videos"
    id: str = Field(default_factory=_uuid, primary_key=True)
    title: str
    description: Optional[str] = None
    video_url: str
    video_type: str = "direct"
    thumbnail_url: Optional[str] = None
    credit_amount: float = 5.0
    watch_duration_seconds: int = 30
    watch_percentage_required: float = 80.0
    display_order: int = 0
    is_active: bool = True
    max_watches_per_day: int = 3
    max_watches_total: Optional[int] = None
    advertiser_name: Optional[str] = None
    category: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class VideoWatch(SQLModel, table=True):
    """One viewing of a video; `is_qualified` once credits were awarded."""
    __tablename__ = "video_watches"
    id: str = Field(default_factory=_uuid, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    video_id: str = Field(foreign_key="watch_ads_videos.id", index=True)
    watch_started_at: datetime = Field(default_factory=_now)
    watch_completed_at: Optional[datetime] = None
    watch_duration_seconds: int = 0
    watch_percentage: float = 0.0
    is_qualified: bool = False
    credits_awarded: float = 0.0
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class AdminActivity(SQLModel, table=True):
    """Audit trail of office actions. `details` holds a JSON document."""
    __tablename__ = "admin_activity"
    id: str = Field(default_factory=_uuid, primary_key=True)
    actor_id: Optional[str] = Field(default=None, index=True)
    action: str = Field(index=True)
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    details: Optional[str] = None
    created_at: datetime = Field(default_factory=_now, index=True)


class CommunityEvent(SQLModel, table=True):
    """A clean-up, drive or workshop shown under Discover & Earn."""
    __tablename__ = "community_events"
    id: str = Field(default_factory=_uuid, primary_key=True)
    title: str
    description: Optional[str] = None
    event_date: date = Field(index=True)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    address: Optional[str] = None
    type: Optional[str] = None
    image_url: Optional[str] = None
    participants: int = 0
    rewards: Optional[str] = None
    status: str = Field(default="upcoming", index=True)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class ExportRequest(SQLModel, table=True):
    """A data export waiting for, or holding, a manager's decision.

    `request_data` holds a JSON document; approved requests can be executed
    until `expires_at`.
    """
    __tablename__ = "export_requests"
    id: str = Field(default_factory=_uuid, primary_key=True)
    requested_by: str = Field(foreign_key="users.id", index=True)
    export_type: str
    report_title: str
    filename: str
    request_data: Optional[str] = None
    status: str = Field(default="pending", index=True)
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    expires_at: datetime
    created_at: datetime = Field(default_factory=_now, index=True)
    updated_at: datetime = Field(default_factory=_now)


class DiscoverEarnCard(SQLModel, table=True):
    """One tile of the resident app's Discover & Earn strip, unique per type."""
    __tablename__ = "discover_earn_cards"
    id: str = Field(default_factory=_uuid, primary_key=True)
    card_type: str = Field(unique=True, index=True)
    title: str
    image_url: str
    description: Optional[str] = None
    subtitle: Optional[str] = None
    button_text: Optional[str] = None
    button_action: Optional[str] = None
    button_color: str = "yellow"
    display_order: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
