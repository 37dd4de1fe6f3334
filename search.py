"""Search across businesses and offers."""
import logging
import re
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

from database import collection
from errors import ValidationError, storage_boundary

logger = logging.getLogger(__name__)


def contains(text: str) -> Dict[str, str]:
    """Case-insensitive substring match for user supplied text."""
    return {"$regex": re.escape(text), "$options": "i"}


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def business_query(q: Optional[str], category: Optional[str], location: Optional[str]) -> Dict[str, Any]:
    clauses = []
    if q:
        clauses.append({"$or": [
            {"businessName": contains(q)},
            {"businessAddress": contains(q)},
            {"pincode": contains(q)},
        ]})
    if location:
        clauses.append({"$or": [{"businessAddress": contains(location)}, {"pincode": contains(location)}]})
    if category:
        clauses.append({"category": contains(category)})
    if not clauses:
        return {}
    return clauses[0] if len(clauses) == 1 else {"$and": clauses}


def post_query(q: Optional[str], category: Optional[str], location: Optional[str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if q:
        query["$or"] = [
            {"content": contains(q)},
            {"author.name": contains(q)},
            {"author.category": contains(q)},
            {"author.location": contains(q)},
        ]
    if category:
        query["author.category"] = contains(category)
    if location:
        query["author.location"] = contains(location)
    return query


def search_businesses(q: Optional[str], category: Optional[str], location: Optional[str]) -> List[Dict[str, Any]]:
    matches = list(collection("businessuser").find(business_query(q, category, location)))
    by_email = {b["email"]: b for b in matches}

    conditions: List[Dict[str, Any]] = []
    if q:
        conditions.append({"name": contains(q)})
    if by_email:
        conditions.append({"email": {"$in": list(by_email)}})
    if not conditions:
        # Filters matched no business rows and there is no name to look for.
        return []

    users = list(collection("user").find({"role": "BUSINESS", "$or": conditions}))
    # Name matches bypass the filters; look up details for every matched email.
    emails = [user["email"] for user in users]
    details_by_email = {b["email"]: b for b in collection("businessuser").find({"email": {"$in": emails}})}
    results = []
    for user in users:
        details = details_by_email.get(user["email"], {})
        results.append({
            "id": str(user["_id"]),
            "type": "business",
            "name": user["name"],
            "image": user.get("profilePicture"),
            "description": details.get("businessAddress") or "Local Business",
            "isVerified": user.get("isVerified", False),
            "category": details.get("category") or "Retail",
        })
    return results


def search_posts(q: Optional[str], category: Optional[str], location: Optional[str]) -> List[Dict[str, Any]]:
    cursor = collection("post").find(post_query(q, category, location)).sort([("createdAt", DESCENDING)])
    return [
        {
            "id": str(post["_id"]),
            "type": "post",
            "name": post["author"]["name"],
            "image": post.get("image") or post["author"].get("picture"),
            "description": post.get("content"),
            "isVerified": post["author"].get("verified", False),
            "category": post["author"].get("category"),
            "likesCount": post.get("likesCount") or 0,
            "commentsCount": post.get("commentsCount") or 0,
        }
        for post in cursor
    ]


def rank(result: Dict[str, Any]) -> int:
    if not result.get("isVerified"):
        return 2
    return 0 if result["type"] == "business" else 1


@storage_boundary
def search(q: Optional[str] = None, category: Optional[str] = None, location: Optional[str] = None) -> List[Dict[str, Any]]:
    q, category, location = _clean(q), _clean(category), _clean(location)
    if not (q or category or location):
        raise ValidationError("Search query or filters are required")

    results = search_businesses(q, category, location) + search_posts(q, category, location)
    # sorted() is stable: equal ranks keep businesses-then-posts input order.
    results = sorted(results, key=rank)
    logger.debug("Search q=%r category=%r location=%r returned %d result(s)", q, category, location, len(results))
    return results
