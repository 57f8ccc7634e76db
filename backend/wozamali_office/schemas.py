"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and provide validation for
controller handlers and tests. Several office screens post camelCase
keys (`collectionId`, `adminNotes`); those fields accept either spelling.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import date
from typing import Any, Dict, List, Optional


class BodyIn(BaseModel):
    """Base for bodies that accept both snake_case and camelCase keys."""
    model_config = ConfigDict(populate_by_name=True)


class LoginIn(BaseModel):
    """Payload for the office login endpoint."""
    email: str
    password: str


class RegisterAdminIn(BaseModel):
    email: str
    password: str = Field(min_length=8)
    full_name: str = ""


class CreateUserIn(BaseModel):
    """Payload for creating a user from the office."""
    email: str
    full_name: str = ""
    role: str = "resident"
    password: Optional[str] = None
    phone: Optional[str] = None


class UpdateUserRoleIn(BodyIn):
    user_id: str = Field(alias="userId")
    role: str


class UserIdIn(BodyIn):
    user_id: str = Field(alias="userId")


class ResetPasswordIn(BodyIn):
    user_id: str = Field(alias="userId")
    new_password: str = Field(alias="newPassword")


class MaterialIn(BaseModel):
    name: str
    current_rate: float = Field(ge=0)
    category: Optional[str] = None


class MaterialUpdateIn(BaseModel):
    current_rate: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = None
    is_active: Optional[bool] = None


class CollectionLineIn(BaseModel):
    """One material line; identify the material by id or by name."""
    material_id: Optional[str] = None
    material_name: Optional[str] = None
    quantity: float
    unit_price: Optional[float] = None


class CollectionIn(BaseModel):
    """A collector's pickup submission."""
    customer_id: str
    materials: List[CollectionLineIn]
    notes: Optional[str] = None
    photo_urls: List[str] = []


class CollectionStatusIn(BaseModel):
    status: str
    admin_notes: Optional[str] = None


class CollectionIdIn(BodyIn):
    collection_id: str = Field(alias="collectionId")


class WithdrawalIn(BaseModel):
    amount: float
    payout_method: Optional[str] = None
    bank_details: Optional[str] = None


class WithdrawalStatusIn(BodyIn):
    status: str
    admin_notes: Optional[str] = Field(default=None, alias="adminNotes")
    payout_method: Optional[str] = Field(default=None, alias="payoutMethod")


class WithdrawalIdIn(BodyIn):
    withdrawal_id: str = Field(alias="withdrawalId")


class DonationIn(BaseModel):
    amount: float
    donor_name: Optional[str] = None
    donor_email: Optional[str] = None
    description: Optional[str] = None


class ScholarIn(BaseModel):
    name: str
    school: Optional[str] = None
    grade: Optional[str] = None
    region: Optional[str] = None
    user_id: Optional[str] = None


class DisbursementIn(BaseModel):
    scholar_id: str
    amount: float
    purpose: str = ""


class ApplicationIn(BaseModel):
    """A public Green Scholar Fund application."""
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    school_name: Optional[str] = None
    grade: Optional[str] = None
    region: Optional[str] = None
    motivation: Optional[str] = None


class ApplicationReviewIn(BaseModel):
    status: str
    review_notes: Optional[str] = None


class HeroSlideIn(BaseModel):
    title: str
    image_url: str
    subtitle: Optional[str] = None
    link_url: Optional[str] = None
    button_text: Optional[str] = None
    display_order: int = 0
    is_active: bool = True


class HeroSlideUpdateIn(BaseModel):
    title: Optional[str] = None
    image_url: Optional[str] = None
    subtitle: Optional[str] = None
    link_url: Optional[str] = None
    button_text: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class RewardIn(BaseModel):
    name: str
    description: Optional[str] = None
    points_required: int = Field(default=0, ge=0)
    category: Optional[str] = None
    is_active: bool = True


class RewardUpdateIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    points_required: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = None
    is_active: Optional[bool] = None


class VideoIn(BaseModel):
    """A sponsored video; defaults match what the ads screen pre-fills."""
    title: str
    video_url: str
    description: Optional[str] = None
    video_type: str = "direct"
    thumbnail_url: Optional[str] = None
    credit_amount: float = Field(default=5.0, ge=0)
    watch_duration_seconds: int = Field(default=30, ge=0)
    watch_percentage_required: float = Field(default=80.0, ge=0, le=100)
    display_order: int = 0
    is_active: bool = True
    max_watches_per_day: int = Field(default=3, ge=1)
    max_watches_total: Optional[int] = Field(default=None, ge=1)
    advertiser_name: Optional[str] = None
    category: Optional[str] = None


class VideoUpdateIn(BaseModel):
    title: Optional[str] = None
    video_url: Optional[str] = None
    description: Optional[str] = None
    video_type: Optional[str] = None
    thumbnail_url: Optional[str] = None
    credit_amount: Optional[float] = Field(default=None, ge=0)
    watch_duration_seconds: Optional[int] = Field(default=None, ge=0)
    watch_percentage_required: Optional[float] = Field(default=None, ge=0, le=100)
    display_order: Optional[int] = None
    is_active: Optional[bool] = None
    max_watches_per_day: Optional[int] = Field(default=None, ge=1)
    max_watches_total: Optional[int] = Field(default=None, ge=1)
    advertiser_name: Optional[str] = None
    category: Optional[str] = None


class WatchStartIn(BaseModel):
    user_id: str
    video_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class WatchProgressIn(BaseModel):
    watch_id: str
    watch_duration_seconds: int = Field(default=0, ge=0)
    watch_percentage: float = Field(default=0.0, ge=0, le=100)
    is_completed: bool = False


class EventIn(BaseModel):
    title: str
    event_date: date
    description: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    address: Optional[str] = None
    type: Optional[str] = None
    image_url: Optional[str] = None
    participants: int = Field(default=0, ge=0)
    rewards: Optional[str] = None
    status: str = "upcoming"


class EventUpdateIn(BaseModel):
    title: Optional[str] = None
    event_date: Optional[date] = None
    description: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    address: Optional[str] = None
    type: Optional[str] = None
    image_url: Optional[str] = None
    participants: Optional[int] = Field(default=None, ge=0)
    rewards: Optional[str] = None
    status: Optional[str] = None


class ExportRequestIn(BaseModel):
    export_type: str
    report_title: str
    filename: str
    request_data: Optional[Dict[str, Any]] = None


class ExportDecisionIn(BaseModel):
    status: str
    rejection_reason: Optional[str] = None


class DiscoverCardIn(BaseModel):
    card_type: str
    title: str
    image_url: str
    description: Optional[str] = None
    subtitle: Optional[str] = None
    button_text: Optional[str] = None
    button_action: Optional[str] = None
    button_color: str = "yellow"
    display_order: int = 0
    is_active: bool = True


class DiscoverCardUpdateIn(BaseModel):
    title: Optional[str] = None
    image_url: Optional[str] = None
    description: Optional[str] = None
    subtitle: Optional[str] = None
    button_text: Optional[str] = None
    button_action: Optional[str] = None
    button_color: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None
