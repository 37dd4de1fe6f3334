"""
Likes, comments and saved offers.

Saved offers live in two places: the savedoffer collection, which is what
every read goes through, and the ``savedPosts`` list on the user document.
Every save and unsave path writes both. The two writes are independent, so a
crash between them can leave ``savedPosts`` stale.
"""
import logging
from typing import Any, Dict, List

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import collection, sanitize, to_obj_id
from errors import ConflictError, NotFoundError, ValidationError, storage_boundary
from notifications import notify_engagement
from schemas import Comment, SavedOffer

logger = logging.getLogger(__name__)


def _load_post(post_id: str) -> Dict[str, Any]:
    post = collection("post").find_one({"_id": to_obj_id(post_id)})
    if not post:
        raise NotFoundError("Post not found")
    return post


def _load_user(user_id: str) -> Dict[str, Any]:
    user = collection("user").find_one({"_id": to_obj_id(user_id)})
    if not user:
        raise NotFoundError("User not found")
    return user


@storage_boundary
def toggle_like(post_id: str, user_id: str) -> Dict[str, Any]:
    post = _load_post(post_id)
    likes: List[str] = list(post.get("likes") or [])
    is_liked = user_id not in likes
    if is_liked:
        likes.append(user_id)
    else:
        likes = [uid for uid in likes if uid != user_id]
    # Recounted from the set, so a drifted counter heals and never goes negative.
    likes_count = len(likes)

    collection("post").update_one(
        {"_id": post["_id"]},
        {"$set": {"likes": likes, "likesCount": likes_count}},
    )
    if is_liked:
        actor = sanitize(collection("user").find_one({"_id": to_obj_id(user_id)})) or {"id": user_id}
        notify_engagement(sanitize(post), actor, "like")
    return {"likesCount": likes_count, "isLiked": is_liked}


@storage_boundary
def add_comment(post_id: str, user_id: str, text: str) -> List[Dict[str, Any]]:
    if not text or not text.strip():
        raise ValidationError("Text is required")
    post = _load_post(post_id)
    user = _load_user(user_id)

    comment = Comment(
        user_id=str(user["_id"]),
        user_name=user["name"],
        user_picture=user.get("profilePicture") or "",
        text=text,
    ).to_document()
    updated = collection("post").find_one_and_update(
        {"_id": post["_id"]},
        {"$push": {"comments": comment}, "$inc": {"commentsCount": 1}},
        return_document=ReturnDocument.AFTER,
    )
    notify_engagement(sanitize(post), sanitize(user), "comment")
    return updated["comments"]


def _save(user_id: str, post_id: str) -> None:
    doc = SavedOffer(user=user_id, post=post_id).to_document()
    try:
        collection("savedoffer").insert_one(doc)
    except DuplicateKeyError:
        raise ConflictError("Offer already saved")
    collection("user").update_one({"_id": to_obj_id(user_id)}, {"$addToSet": {"savedPosts": post_id}})


def _unsave(user_id: str, post_id: str) -> bool:
    res = collection("savedoffer").delete_one({"user": user_id, "post": post_id})
    collection("user").update_one({"_id": to_obj_id(user_id)}, {"$pull": {"savedPosts": post_id}})
    return res.deleted_count > 0


@storage_boundary
def toggle_save(post_id: str, user_id: str) -> Dict[str, bool]:
    _load_user(user_id)
    post_id = str(_load_post(post_id)["_id"])
    if collection("savedoffer").find_one({"user": user_id, "post": post_id}):
        _unsave(user_id, post_id)
        return {"isSaved": False}
    _save(user_id, post_id)
    return {"isSaved": True}


@storage_boundary
def save_offer(user_id: str, post_id: str) -> Dict[str, Any]:
    post_id = str(_load_post(post_id)["_id"])
    if collection("savedoffer").find_one({"user": user_id, "post": post_id}):
        raise ConflictError("Offer already saved")
    _save(user_id, post_id)
    logger.info("User %s saved offer %s", user_id, post_id)
    return {"message": "Offer saved"}


@storage_boundary
def unsave_offer(user_id: str, post_id: str) -> Dict[str, Any]:
    if _unsave(user_id, str(post_id)):
        logger.info("User %s unsaved offer %s", user_id, post_id)
    return {"message": "Offer unsaved"}


@storage_boundary
def list_saved_offers(user_id: str) -> List[Dict[str, Any]]:
    rows = list(collection("savedoffer").find({"user": user_id}).sort([("savedAt", DESCENDING)]))
    post_ids = [ObjectId(row["post"]) for row in rows if ObjectId.is_valid(row["post"])]
    posts = {str(p["_id"]): sanitize(p) for p in collection("post").find({"_id": {"$in": post_ids}})}

    offers = []
    for row in rows:
        post = posts.get(row["post"])
        if post is None:
            continue
        offers.append({
            "id": post["id"],
            "businessName": post.get("author", {}).get("name") or "Unknown Business",
            "offerText": post.get("content"),
            "offerImage": post.get("image"),
            "savedAt": row["savedAt"],
            "post": post,
        })
    return offers
