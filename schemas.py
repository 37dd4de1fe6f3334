"""
Database Schemas for the Offers Platform

MongoDB collections are defined below using Pydantic models. Each class name is
converted to lowercase for the collection name (User -> "user").

We will use these collections:
- user: everyone who signed in with Google (normal users, businesses, admins)
- businessuser: business registrations, keyed by email
- post: offers, with a copy of the author taken at creation time
- savedoffer: one row per (user, post) save
- notification: per-user inbox entries produced by fan-out

Documents are stored with camelCase keys, which is also what the API returns.
"""

from datetime import datetime, timedelta
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

from database import utcnow

Role = Literal["NORMAL_USER", "BUSINESS", "ADMIN"]
VerificationStatus = Literal["pending", "approved", "rejected", "none"]
RelatedModel = Literal["Post", "BusinessUser", "User"]
NotificationType = Literal[
    "new_offer",
    "offer_expiry",
    "saved_offer_update",
    "business_update",
    "system",
    "like",
    "comment",
]

OFFER_LIFETIME = timedelta(days=7)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class User(CamelModel):
    name: str
    email: EmailStr
    external_id: str = Field(..., description="Subject of the Google identity")
    profile_picture: Optional[str] = None
    role: Role = Field("NORMAL_USER")
    is_verified: bool = False
    verification_status: VerificationStatus = "none"
    verified_at: Optional[datetime] = None
    saved_posts: List[str] = Field(default_factory=list, description="Cache of savedoffer rows")
    created_at: datetime = Field(default_factory=utcnow)


class BusinessUser(CamelModel):
    business_name: str = Field(..., min_length=1)
    business_address: str = Field(..., min_length=1)
    pincode: str = Field(..., min_length=1)
    timing: str = Field(..., description="Opening and closing timing")
    email: EmailStr
    category: str = "Retail"
    created_at: datetime = Field(default_factory=utcnow)


class Author(CamelModel):
    id: str
    name: str
    picture: str = ""
    verified: bool = False
    role: Role
    category: Optional[str] = None
    location: Optional[str] = None


class Comment(CamelModel):
    user_id: str
    user_name: str
    user_picture: str = ""
    text: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)


class Post(CamelModel):
    author: Author
    content: str = ""
    image: Optional[str] = None
    likes_count: int = Field(0, ge=0)
    comments_count: int = Field(0, ge=0)
    views: int = Field(0, ge=0)
    likes: List[str] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_body_and_expiry(self):
        if not self.content.strip() and not self.image:
            raise ValueError("Post must have content or image")
        if self.expires_at is None:
            self.expires_at = self.created_at + OFFER_LIFETIME
        return self


class SavedOffer(CamelModel):
    user: str = Field(..., description="Reference to user _id")
    post: str = Field(..., description="Reference to post _id")
    saved_at: datetime = Field(default_factory=utcnow)


class Notification(CamelModel):
    user: str = Field(..., description="Recipient user _id")
    title: str
    message: str
    related_id: Optional[str] = None
    related_model: Optional[RelatedModel] = None
    type: NotificationType = "system"
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
