"""
Notification fan-out.

Fan-out runs inline in the request that triggered it: the audience is
computed, deduplicated and bulk inserted before the response goes out.
A failure halfway through leaves the notifications already written in place.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from pymongo import DESCENDING, ReturnDocument

from database import collection, get_documents, sanitize, to_obj_id
from errors import NotFoundError, storage_boundary
from schemas import Notification

logger = logging.getLogger(__name__)

NOTIFICATION_PAGE_SIZE = 50


def unique_ids(user_ids: Iterable[Any]) -> List[str]:
    """Distinct recipient ids as strings, in first-seen order."""
    return list(dict.fromkeys(str(uid) for uid in user_ids if uid))


def fan_out(
    user_ids: Iterable[Any],
    title: str,
    message: str,
    kind: str,
    related_id: Optional[str] = None,
    related_model: Optional[str] = None,
) -> int:
    recipients = unique_ids(user_ids)
    if not recipients:
        return 0
    docs = [
        Notification(
            user=uid,
            title=title,
            message=message,
            type=kind,
            related_id=related_id,
            related_model=related_model,
        ).to_document()
        for uid in recipients
    ]
    collection("notification").insert_many(docs)
    logger.info("Fanned out %d %s notification(s) for %s", len(docs), kind, related_id)
    return len(docs)


def notify_once(user_id: str, title: str, message: str, kind: str, related_id: str, related_model: str) -> bool:
    """Insert a notification unless the (user, related_id, kind) triple already has one."""
    existing = collection("notification").find_one({"user": user_id, "relatedId": related_id, "type": kind})
    if existing:
        return False
    doc = Notification(
        user=user_id,
        title=title,
        message=message,
        type=kind,
        related_id=related_id,
        related_model=related_model,
    ).to_document()
    collection("notification").insert_one(doc)
    return True


def saved_by(post_ids: Iterable[str]) -> List[str]:
    """Users holding a savedoffer row for any of ``post_ids``."""
    post_ids = list(post_ids)
    if not post_ids:
        return []
    rows = collection("savedoffer").find({"post": {"$in": post_ids}}, {"user": 1})
    return unique_ids(row["user"] for row in rows)


def _preview(post: Dict[str, Any], size: int = 100) -> str:
    content = (post.get("content") or "").strip()
    if not content:
        return "Check out the new offer!"
    return content if len(content) <= size else content[:size].rstrip() + "..."


def notify_new_offer(post: Dict[str, Any]) -> int:
    # Every other user hears about it; there is no subscription or proximity filter.
    author_id = post["author"]["id"]
    audience = [doc["_id"] for doc in collection("user").find({}, {"_id": 1}) if str(doc["_id"]) != author_id]
    return fan_out(
        audience,
        title=f"New offer from {post['author']['name']}",
        message=_preview(post),
        kind="new_offer",
        related_id=post["id"],
        related_model="Post",
    )


def notify_saved_offer_update(post: Dict[str, Any]) -> int:
    return fan_out(
        saved_by([post["id"]]),
        title=f"{post['author']['name']} updated an offer you saved",
        message=_preview(post),
        kind="saved_offer_update",
        related_id=post["id"],
        related_model="Post",
    )


def notify_business_update(business_user_id: str, business_name: str) -> int:
    post_ids = [str(p["_id"]) for p in collection("post").find({"author.id": business_user_id}, {"_id": 1})]
    return fan_out(
        saved_by(post_ids),
        title=f"{business_name} Updated Profile",
        message="A business you are interested in has updated their profile.",
        kind="business_update",
        related_id=business_user_id,
        related_model="User",
    )


def notify_engagement(post: Dict[str, Any], actor: Dict[str, Any], kind: str) -> int:
    """Tell a post's author that someone liked or commented on it."""
    author_id = post["author"]["id"]
    if author_id == actor["id"]:
        return 0
    verb = "liked" if kind == "like" else "commented on"
    return fan_out(
        [author_id],
        title=f"{actor.get('name', 'Someone')} {verb} your post",
        message=_preview(post),
        kind=kind,
        related_id=post["id"],
        related_model="Post",
    )


@storage_boundary
def list_notifications(user_id: str, limit: int = NOTIFICATION_PAGE_SIZE) -> List[Dict[str, Any]]:
    return get_documents("notification", {"user": user_id}, limit=limit, sort=[("createdAt", DESCENDING)])


@storage_boundary
def mark_as_read(notification_id: str, user_id: str) -> Dict[str, Any]:
    res = collection("notification").find_one_and_update(
        {"_id": to_obj_id(notification_id), "user": user_id},
        {"$set": {"isRead": True}},
        return_document=ReturnDocument.AFTER,
    )
    if not res:
        raise NotFoundError("Notification not found")
    return sanitize(res)
