"""User accounts: sign-in, role assignment, profiles and admin verification."""
import logging
from typing import Any, Dict
from urllib.parse import quote

from pymongo import ReturnDocument

from auth import Identity, create_access_token
from database import collection, create_document, sanitize, to_obj_id, utcnow
from errors import IdentityError, NotFoundError, ValidationError, storage_boundary
from schemas import User

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


@storage_boundary
def resolve_or_create_user(identity: Identity) -> Dict[str, Any]:
    """Create or refresh the user row for a resolved Google identity.

    A businessuser row for the email makes the account a BUSINESS one and its
    business name wins over the Google display name. Businesses are treated as
    verified the first time they sign in; an existing ``verifiedAt`` is kept.
    """
    email = (identity.email or "").strip().lower()
    if not email:
        raise IdentityError("Identity has no email address")

    business = collection("businessuser").find_one({"email": email})
    role = "BUSINESS" if business else "NORMAL_USER"
    name = business["businessName"] if business and business.get("businessName") else identity.name

    users = collection("user")
    existing = users.find_one({"email": email})
    now = utcnow()

    if not existing:
        doc = User(
            name=name,
            email=email,
            external_id=identity.external_id,
            profile_picture=identity.picture,
            role=role,
        ).to_document()
        if role == "BUSINESS":
            doc.update({"isVerified": True, "verificationStatus": "approved", "verifiedAt": now})
        created = create_document("user", doc)
        logger.info("Created %s account for %s", role, email)
        return created

    # Admins are provisioned out of band and keep their role across logins.
    if existing.get("role") == "ADMIN":
        role = "ADMIN"
    changes: Dict[str, Any] = {
        "name": name,
        "profilePicture": identity.picture,
        "role": role,
        "updatedAt": now,
    }
    if identity.external_id and not existing.get("externalId"):
        changes["externalId"] = identity.external_id
    if role == "BUSINESS":
        # Sign-in re-approves a business, overriding an earlier admin rejection.
        changes["isVerified"] = True
        changes["verificationStatus"] = "approved"
        if not existing.get("verifiedAt"):
            changes["verifiedAt"] = now
    updated = users.find_one_and_update(
        {"_id": existing["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Refreshed %s account for %s", role, email)
    return sanitize(updated)


def login(identity: Identity) -> Dict[str, Any]:
    user = resolve_or_create_user(identity)
    return {
        "success": True,
        "role": user["role"],
        "user_id": user["id"],
        "name": user["name"],
        "email": user["email"],
        "profilePicture": user.get("profilePicture"),
        "token": create_access_token(user),
    }


def default_avatar(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(name or '')}&background=random"


@storage_boundary
def get_user_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    business_details: Dict[str, Any] = {}
    if user.get("role") == "BUSINESS":
        business = collection("businessuser").find_one({"email": user["email"]})
        if business:
            business_details = {
                "businessName": business["businessName"],
                "address": business["businessAddress"],
                "category": business.get("category") or "Retail",
            }
    return {
        "id": user["id"],
        "name": business_details.get("businessName") or user["name"],
        "email": user["email"],
        "profilePicture": user.get("profilePicture") or default_avatar(user["name"]),
        "role": user["role"],
        "isVerified": user.get("isVerified", False),
        "verificationStatus": user.get("verificationStatus") or "none",
        **business_details,
    }


@storage_boundary
def get_public_profile(user_id: str) -> Dict[str, Any]:
    user = collection("user").find_one({"_id": to_obj_id(user_id)})
    if not user:
        raise NotFoundError("User not found")
    joined = user.get("createdAt")
    joined_text = f"Joined {MONTH_NAMES[joined.month - 1]} {joined.year}" if joined else None
    return {
        "displayName": user["name"],
        "profileImageUrl": user.get("profilePicture"),
        "accountType": "Business" if user.get("role") == "BUSINESS" else "User",
        "joinedMonthYear": joined_text,
    }


def _load_business_account(user_id: str) -> Dict[str, Any]:
    user = collection("user").find_one({"_id": to_obj_id(user_id)})
    if not user:
        raise NotFoundError("User not found")
    if user.get("role") != "BUSINESS":
        raise ValidationError("User is not a business")
    return user


@storage_boundary
def verify_business(user_id: str) -> Dict[str, Any]:
    user = _load_business_account(user_id)
    changes = {"isVerified": True, "verificationStatus": "approved", "verifiedAt": utcnow()}
    collection("user").update_one({"_id": user["_id"]}, {"$set": changes})
    user.update(changes)
    logger.info("Business %s verified", user["email"])
    return {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "isVerified": True,
        "verificationStatus": "approved",
        "verifiedAt": user["verifiedAt"],
    }


@storage_boundary
def reject_business(user_id: str) -> Dict[str, Any]:
    user = _load_business_account(user_id)
    changes = {"isVerified": False, "verificationStatus": "rejected", "verifiedAt": None}
    collection("user").update_one({"_id": user["_id"]}, {"$set": changes})
    logger.info("Business %s rejected", user["email"])
    return {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "isVerified": False,
        "verificationStatus": "rejected",
    }
