"""Business registration, profile edits and the business-facing read models."""
import logging
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from database import collection, create_document, sanitize, to_obj_id, utcnow
from errors import AuthError, ConflictError, NotFoundError, storage_boundary
from notifications import notify_business_update
from schemas import BusinessUser

logger = logging.getLogger(__name__)


@storage_boundary
def register_business(
    business_name: str,
    business_address: str,
    pincode: str,
    timing: str,
    email: str,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a businessuser row and promote a matching user to BUSINESS.

    Verification fields are left alone here, so an upgraded user stays
    unverified until an admin (or the next sign-in) approves it.
    """
    email = email.strip().lower()
    businesses = collection("businessuser")
    if businesses.find_one({"email": email}):
        raise ConflictError("Business with this email already exists")

    doc = BusinessUser(
        business_name=business_name,
        business_address=business_address,
        pincode=pincode,
        timing=timing,
        email=email,
        category=category or "Retail",
    ).to_document()
    try:
        created = create_document("businessuser", doc)
    except DuplicateKeyError:
        raise ConflictError("Business with this email already exists")

    upgraded = collection("user").update_one(
        {"email": email},
        {"$set": {"role": "BUSINESS", "updatedAt": utcnow()}},
    )
    if upgraded.matched_count:
        logger.info("Upgraded existing user %s to BUSINESS", email)
    logger.info("Registered business %s", email)
    return created


@storage_boundary
def update_business_profile(
    user_id: str,
    business_name: Optional[str] = None,
    address: Optional[str] = None,
    category: Optional[str] = None,
    profile_picture: Optional[str] = None,
) -> Dict[str, Any]:
    users = collection("user")
    user = users.find_one({"_id": to_obj_id(user_id)})
    if not user or user.get("role") != "BUSINESS":
        raise AuthError("Not authorized")
    business = collection("businessuser").find_one({"email": user["email"]})
    if not business:
        raise NotFoundError("Business profile not found")

    now = utcnow()
    business_changes: Dict[str, Any] = {"updatedAt": now}
    user_changes: Dict[str, Any] = {"updatedAt": now}
    if business_name:
        business_changes["businessName"] = business_name
        user_changes["name"] = business_name
    if address:
        business_changes["businessAddress"] = address
    if category:
        business_changes["category"] = category
    if profile_picture:
        user_changes["profilePicture"] = profile_picture

    collection("businessuser").update_one({"_id": business["_id"]}, {"$set": business_changes})
    users.update_one({"_id": user["_id"]}, {"$set": user_changes})
    business.update(business_changes)
    user.update(user_changes)

    # Re-sent on every edit, no throttling.
    notify_business_update(str(user["_id"]), business["businessName"])

    return {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "role": user["role"],
        "profilePicture": user.get("profilePicture"),
        "businessName": business["businessName"],
        "address": business["businessAddress"],
        "category": business.get("category") or "Retail",
        "isVerified": user.get("isVerified", False),
        "verificationStatus": user.get("verificationStatus", "none"),
    }


@storage_boundary
def get_business_insights(user_id: str) -> Dict[str, int]:
    posts = list(collection("post").find({"author.id": user_id}, {"views": 1, "likesCount": 1}))
    if not posts:
        return {"totalViews": 0, "savedCount": 0, "likesCount": 0, "postCount": 0}
    post_ids = [str(p["_id"]) for p in posts]
    return {
        "totalViews": sum(p.get("views") or 0 for p in posts),
        "savedCount": collection("savedoffer").count_documents({"post": {"$in": post_ids}}),
        "likesCount": sum(p.get("likesCount") or 0 for p in posts),
        "postCount": len(posts),
    }


@storage_boundary
def get_business_posts(user_id: str, page: int = 1, limit: int = 10) -> List[Dict[str, Any]]:
    page = max(page, 1)
    limit = max(limit, 1)
    cursor = (
        collection("post")
        .find({"author.id": user_id})
        .sort([("createdAt", DESCENDING)])
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return [sanitize(p) for p in cursor]


def _load_business(business_id: str):
    user = collection("user").find_one({"_id": to_obj_id(business_id)})
    if not user or user.get("role") != "BUSINESS":
        raise NotFoundError("Business not found")
    details = collection("businessuser").find_one({"email": user["email"]}) or {}
    return user, details


@storage_boundary
def get_public_business_card(business_id: str) -> Dict[str, Any]:
    user, details = _load_business(business_id)
    latest = collection("post").find_one({"author.id": business_id}, sort=[("createdAt", DESCENDING)])
    category = (latest or {}).get("author", {}).get("category") or details.get("category") or "Retail"
    return {
        "businessName": details.get("businessName") or user["name"],
        "profileImageUrl": user.get("profilePicture"),
        "category": category,
        "locality": details.get("businessAddress") or "Location unavailable",
        "verifiedStatus": user.get("isVerified", False),
        "activeOffer": {
            "offerText": latest.get("content"),
            "offerBadgeText": "LATEST OFFER",
            "createdAt": latest.get("createdAt"),
        } if latest else None,
    }


@storage_boundary
def get_public_business_profile(business_id: str) -> Dict[str, Any]:
    user, details = _load_business(business_id)
    latest = list(
        collection("post").find({"author.id": business_id}).sort([("createdAt", DESCENDING)]).limit(3)
    )
    name = details.get("businessName") or user["name"]
    category = (latest[0]["author"].get("category") if latest else None) or details.get("category") or "Retail"
    verified = user.get("isVerified", False)
    return {
        "businessName": name,
        "profileImageUrl": user.get("profilePicture"),
        "verifiedStatus": verified,
        "category": category,
        "locality": details.get("businessAddress") or "Location unavailable",
        "shortDescription": f"Welcome to {name}. Check out our latest offers!",
        "activeOffers": [
            {
                "id": str(post["_id"]),
                "offerText": post.get("content"),
                "offerImageUrl": post.get("image"),
                "createdAt": post.get("createdAt"),
                "expiresAt": post.get("expiresAt"),
                "author": {
                    "name": name,
                    "picture": user.get("profilePicture"),
                    "verified": verified,
                    "category": category,
                },
                "likesCount": post.get("likesCount") or 0,
                "commentsCount": post.get("commentsCount") or 0,
            }
            for post in latest
        ],
    }
