"""
Offer lifecycle: creating, editing, listing and expiring posts.

A post carries a copy of its author taken when it was written. The copy is
not kept in sync with the profile; ``refresh_author_snapshot`` rewrites it
on demand.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from pymongo import DESCENDING, ReturnDocument

from database import as_utc, collection, create_document, sanitize, to_obj_id, utcnow
from errors import AuthError, NotFoundError, ValidationError, storage_boundary
from notifications import notify_new_offer, notify_once, notify_saved_offer_update, saved_by
from schemas import Author, Post

logger = logging.getLogger(__name__)

EXPIRY_WINDOW = timedelta(hours=24)
MAX_PAGE_SIZE = 50


def build_author(user: Dict[str, Any], location: Optional[str] = None) -> Author:
    author = Author(
        id=str(user["id"]),
        name=user["name"],
        picture=user.get("profilePicture") or "",
        verified=bool(user.get("isVerified")),
        role=user["role"],
    )
    if user["role"] == "BUSINESS":
        business = collection("businessuser").find_one({"email": user["email"]})
        if business:
            author.name = business["businessName"]
            author.category = business.get("category") or "Retail"
            author.location = business["businessAddress"]
    elif location:
        author.location = location
    return author


@storage_boundary
def create_post(
    author: Optional[Dict[str, Any]],
    content: Optional[str] = None,
    image: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    location: Optional[str] = None,
) -> Dict[str, Any]:
    if (not content or not content.strip()) and not image:
        raise ValidationError("Post must have content or image")
    if not author:
        raise AuthError("Not authorized")

    now = utcnow()
    if expires_at is not None:
        expires_at = as_utc(expires_at)
        if expires_at <= now:
            raise ValidationError("expiresAt must be in the future")

    post = Post(
        author=build_author(author, location),
        content=content or "",
        image=image,
        created_at=now,
        expires_at=expires_at,
    )
    post = create_document("post", post)
    logger.info("Post %s created by %s", post["id"], post["author"]["id"])

    if post["author"]["role"] == "BUSINESS":
        notify_new_offer(post)
    return post


@storage_boundary
def update_post(
    post_id: str,
    editor_id: str,
    content: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    image: Optional[str] = None,
) -> Dict[str, Any]:
    posts = collection("post")
    post = posts.find_one({"_id": to_obj_id(post_id)})
    if not post:
        raise NotFoundError("Post not found")
    if post["author"]["id"] != str(editor_id):
        raise AuthError("Not authorized to edit this post")

    changes: Dict[str, Any] = {}
    if content is not None:
        changes["content"] = content
    if image is not None:
        changes["image"] = image
    if expires_at is not None:
        changes["expiresAt"] = as_utc(expires_at)
    merged = {**post, **changes}
    if not (merged.get("content") or "").strip() and not merged.get("image"):
        raise ValidationError("Post must have content or image")

    changes["updatedAt"] = utcnow()
    updated = sanitize(posts.find_one_and_update(
        {"_id": post["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    ))
    notify_saved_offer_update(updated)
    return updated


@storage_boundary
def get_feed(page: int = 1, limit: int = 10, viewer: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    posts = collection("post")
    cursor = posts.find({}).sort([("createdAt", DESCENDING)]).skip((page - 1) * limit).limit(limit)
    items = [sanitize(p) for p in cursor]
    total = posts.count_documents({})

    if viewer:
        saved = {
            row["post"]
            for row in collection("savedoffer").find(
                {"user": viewer["id"], "post": {"$in": [p["id"] for p in items]}}, {"post": 1}
            )
        }
        for p in items:
            p["isLiked"] = viewer["id"] in p.get("likes", [])
            p["isSaved"] = p["id"] in saved

    return {"posts": items, "page": page, "pages": math.ceil(total / limit), "total": total}


@storage_boundary
def get_post(post_id: str) -> Dict[str, Any]:
    post = collection("post").find_one_and_update(
        {"_id": to_obj_id(post_id)},
        {"$inc": {"views": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if not post:
        raise NotFoundError("Post not found")
    return sanitize(post)


@storage_boundary
def check_expiry_and_notify(now: Optional[datetime] = None) -> int:
    """Warn savers of offers that expire within the next 24 hours.

    Each (user, post) pair gets at most one offer_expiry notification no
    matter how often the sweep runs. Expired posts are left in place.
    """
    now = as_utc(now) if now else utcnow()
    expiring = list(collection("post").find({"expiresAt": {"$gte": now, "$lt": now + EXPIRY_WINDOW}}))
    created = 0
    for post in expiring:
        post_id = str(post["_id"])
        name = post["author"]["name"]
        for user_id in saved_by([post_id]):
            if notify_once(
                user_id,
                title=f"Offer from {name} expires soon",
                message="An offer you saved expires within 24 hours.",
                kind="offer_expiry",
                related_id=post_id,
                related_model="Post",
            ):
                created += 1
    logger.info("Expiry sweep created %d notification(s)", created)
    return created


@storage_boundary
def refresh_author_snapshot(user: Dict[str, Any]) -> int:
    author = build_author(user).to_document()
    res = collection("post").update_many(
        {"author.id": str(user["id"])},
        {"$set": {"author": author, "updatedAt": utcnow()}},
    )
    return res.modified_count


if __name__ == "__main__":
    from config import get_settings

    logging.basicConfig(level=get_settings().log_level)
    logger.info("Notified %d user(s) of expiring offers", check_expiry_and_notify())
