from dataclasses import dataclass
from typing import Optional

ROLE_USER = "user"
ROLE_SUBSCRIBER = "subscriber"
ROLE_MUSICIAN = "musician"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_SUBSCRIBER, ROLE_MUSICIAN, ROLE_ADMIN)

MODERATION_PENDING = "pending"
MODERATION_APPROVED = "approved"
MODERATION_REJECTED = "rejected"

VISIBILITY_PRIVATE = "private"
VISIBILITY_PUBLIC = "public"
VISIBILITY_UNLISTED = "unlisted"
VISIBILITIES = (VISIBILITY_PRIVATE, VISIBILITY_PUBLIC, VISIBILITY_UNLISTED)

PERIODS = ("all", "today", "week", "month", "year")


@dataclass
class CurrentUser:
    id: int
    username: str
    role: str  # 'user' | 'subscriber' | 'musician' | 'admin'


@dataclass
class PaymentDetails:
    card_number: str
    card_holder: str
    expiry: str  # MM/YY
    cvc: str


@dataclass
class Track:
    id: int
    title: str
    file_path: str
    duration_s: int
    genre_id: int
    artist_id: Optional[int]
    album_id: Optional[int]
    is_moderated: bool
    uploaded_by_user_id: Optional[int]
    created_at: str
