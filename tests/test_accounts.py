from datetime import datetime

import pytest

import accounts
import business
from auth import Identity, user_from_token
from errors import ConflictError, IdentityError, NotFoundError, ValidationError


def identity(email="Alice@Example.com ", name="Alice", picture="https://img/alice.png", sub="g-1"):
    return Identity(email=email, name=name, picture=picture, external_id=sub)


def test_first_login_creates_normal_user(db):
    user = accounts.resolve_or_create_user(identity())

    assert user["email"] == "alice@example.com"
    assert user["role"] == "NORMAL_USER"
    assert user["isVerified"] is False
    assert user["verificationStatus"] == "none"
    assert user["verifiedAt"] is None
    assert db["user"].count_documents({}) == 1


def test_missing_email_is_rejected(db):
    with pytest.raises(IdentityError):
        accounts.resolve_or_create_user(identity(email="  "))


def test_business_login_uses_business_name_and_is_verified(db):
    db["businessuser"].insert_one({
        "businessName": "Corner Cafe",
        "businessAddress": "12 Main Street",
        "pincode": "560001",
        "timing": "9-5",
        "email": "alice@example.com",
        "category": "Food",
    })

    user = accounts.resolve_or_create_user(identity())

    assert user["role"] == "BUSINESS"
    assert user["name"] == "Corner Cafe"
    assert user["isVerified"] is True
    assert user["verificationStatus"] == "approved"
    assert isinstance(user["verifiedAt"], datetime)


def test_login_refreshes_existing_user(db, make_user):
    existing = make_user(name="Old Name", email="alice@example.com")

    user = accounts.resolve_or_create_user(identity(name="Alice New", picture="https://img/new.png"))

    assert user["id"] == existing["id"]
    assert user["name"] == "Alice New"
    assert user["profilePicture"] == "https://img/new.png"
    assert db["user"].count_documents({}) == 1


def test_promotion_keeps_existing_verification_timestamp(db, make_user):
    existing = make_user(email="alice@example.com")
    stamp = datetime(2024, 1, 2, 3, 4, 5)
    db["user"].update_one({"email": "alice@example.com"}, {"$set": {"verifiedAt": stamp}})
    business.register_business("Corner Cafe", "12 Main Street", "560001", "9-5", "alice@example.com")

    user = accounts.resolve_or_create_user(identity())

    assert user["id"] == existing["id"]
    assert user["role"] == "BUSINESS"
    assert user["isVerified"] is True
    assert user["verifiedAt"] == stamp


def test_admin_keeps_role_on_login(db, make_user):
    make_user(email="alice@example.com", role="ADMIN")

    user = accounts.resolve_or_create_user(identity())

    assert user["role"] == "ADMIN"


def test_login_returns_session_token(db):
    result = accounts.login(identity())

    assert result["success"] is True
    assert result["role"] == "NORMAL_USER"
    assert result["email"] == "alice@example.com"
    assert user_from_token(result["token"])["id"] == result["user_id"]


def test_register_business_upgrades_existing_user_without_touching_identity(db, make_user):
    existing = make_user(name="Bob", email="bob@example.com")

    created = business.register_business("Bob's Bakes", "1 Side St", "400001", "8-8", "BOB@example.com")

    assert created["email"] == "bob@example.com"
    assert created["category"] == "Retail"
    user = db["user"].find_one({"email": "bob@example.com"})
    assert user["role"] == "BUSINESS"
    assert user["name"] == existing["name"]
    assert user["email"] == existing["email"]
    assert user["isVerified"] is False


def test_register_business_twice_conflicts(db):
    business.register_business("Bob's Bakes", "1 Side St", "400001", "8-8", "bob@example.com")

    with pytest.raises(ConflictError):
        business.register_business("Other", "2 Side St", "400002", "8-8", "bob@example.com")


def test_verify_and_reject_business(db, make_business):
    biz = make_business(verified=False)

    verified = accounts.verify_business(biz["id"])
    assert verified["isVerified"] is True
    assert verified["verificationStatus"] == "approved"

    rejected = accounts.reject_business(biz["id"])
    assert rejected["verificationStatus"] == "rejected"
    stored = db["user"].find_one({"email": biz["email"]})
    assert stored["isVerified"] is False
    assert stored["verifiedAt"] is None


def test_verify_requires_a_business(db, make_user):
    user = make_user()

    with pytest.raises(ValidationError):
        accounts.verify_business(user["id"])
    with pytest.raises(NotFoundError):
        accounts.verify_business("not-an-id")


def test_profiles(db, make_business):
    biz = make_business()

    profile = accounts.get_user_profile(biz)
    assert profile["businessName"] == "Corner Cafe"
    assert profile["category"] == "Food"

    public = accounts.get_public_profile(biz["id"])
    assert public["accountType"] == "Business"
    assert public["joinedMonthYear"].startswith("Joined ")


def test_profile_falls_back_to_generated_avatar(db, make_user):
    user = make_user(name="Jane Doe")

    profile = accounts.get_user_profile(user)

    assert profile["profilePicture"].startswith("https://ui-avatars.com/api/?name=Jane%20Doe")


def test_business_sign_in_reapproves_after_rejection(db, make_business):
    biz = make_business(email="alice@example.com")
    accounts.reject_business(biz["id"])

    user = accounts.resolve_or_create_user(identity())

    assert user["isVerified"] is True
    assert user["verificationStatus"] == "approved"
