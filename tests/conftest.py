"""Shared pytest fixtures backed by an in-memory MongoDB."""
import os
from datetime import timedelta
from typing import Any, Dict, Optional

import mongomock
import pytest

import database
from config import get_settings


@pytest.fixture(scope="session", autouse=True)
def _test_env_vars():
    """Provide minimal env vars before settings are first read."""
    os.environ.setdefault("JWT_SECRET", "test-secret")
    os.environ.setdefault("DATABASE_NAME", "offbytes_test")
    os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def db():
    """Function-scoped database with empty collections."""
    handle = database.connect(mongomock.MongoClient())
    try:
        yield handle
    finally:
        database.close()


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make_user(
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: str = "NORMAL_USER",
        verified: bool = False,
        picture: str = "",
    ) -> Dict[str, Any]:
        counter["n"] += 1
        n = counter["n"]
        doc = {
            "name": name or f"User {n}",
            "email": email or f"user{n}@example.com",
            "externalId": f"google-{n}",
            "profilePicture": picture,
            "role": role,
            "isVerified": verified,
            "verificationStatus": "approved" if verified else "none",
            "verifiedAt": database.utcnow() if verified else None,
            "savedPosts": [],
            "createdAt": database.utcnow() - timedelta(minutes=n),
        }
        res = db["user"].insert_one(doc)
        doc["_id"] = res.inserted_id
        return database.sanitize(doc)

    return _make_user


@pytest.fixture()
def make_business(db, make_user):
    def _make_business(
        business_name: str = "Corner Cafe",
        email: str = "owner@cornercafe.com",
        address: str = "12 Main Street",
        pincode: str = "560001",
        category: str = "Food",
        verified: bool = True,
    ) -> Dict[str, Any]:
        db["businessuser"].insert_one({
            "businessName": business_name,
            "businessAddress": address,
            "pincode": pincode,
            "timing": "9am-9pm",
            "email": email,
            "category": category,
            "createdAt": database.utcnow(),
        })
        return make_user(name=business_name, email=email, role="BUSINESS", verified=verified)

    return _make_business


@pytest.fixture()
def client(db):
    from fastapi.testclient import TestClient

    import main

    return TestClient(main.app)


@pytest.fixture()
def auth_headers():
    from auth import create_access_token

    def _headers(user: Dict[str, Any]) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user)}"}

    return _headers
