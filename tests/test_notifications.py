import pytest
from bson import ObjectId

import business
import engagement
import notifications
import offers
from errors import AuthError, NotFoundError


def test_unique_ids_keeps_first_seen_order():
    ids = [ObjectId("64b7f0c2a1b2c3d4e5f60718"), "b", "a", "b", None, "64b7f0c2a1b2c3d4e5f60718"]

    assert notifications.unique_ids(ids) == ["64b7f0c2a1b2c3d4e5f60718", "b", "a"]


def test_fan_out_dedups_recipients(db):
    count = notifications.fan_out(["u1", "u2", "u1"], "Hi", "Hello", kind="system")

    assert count == 2
    assert sorted(n["user"] for n in db["notification"].find()) == ["u1", "u2"]


def test_fan_out_without_audience_writes_nothing(db):
    assert notifications.fan_out([], "Hi", "Hello", kind="system") == 0
    assert db["notification"].count_documents({}) == 0


def test_notify_once_is_keyed_by_user_post_and_type(db):
    args = dict(title="t", message="m", related_id="p1", related_model="Post")

    assert notifications.notify_once("u1", kind="offer_expiry", **args) is True
    assert notifications.notify_once("u1", kind="offer_expiry", **args) is False
    assert notifications.notify_once("u2", kind="offer_expiry", **args) is True
    assert notifications.notify_once("u1", kind="saved_offer_update", **args) is True


def test_business_profile_update_notifies_each_saver_once_per_edit(db, make_business, make_user):
    biz = make_business()
    first = offers.create_post(biz, content="Deal one")
    second = offers.create_post(biz, content="Deal two")
    saver = make_user()
    other_saver = make_user()
    bystander = make_user()
    engagement.save_offer(saver["id"], first["id"])
    engagement.save_offer(saver["id"], second["id"])
    engagement.save_offer(other_saver["id"], second["id"])

    profile = business.update_business_profile(biz["id"], business_name="Corner Cafe & Bakery")
    business.update_business_profile(biz["id"], address="14 Main Street")

    assert profile["businessName"] == "Corner Cafe & Bakery"
    notes = list(db["notification"].find({"type": "business_update"}))
    assert len(notes) == 4
    assert sorted(n["user"] for n in notes) == sorted([saver["id"], saver["id"], other_saver["id"], other_saver["id"]])
    assert bystander["id"] not in {n["user"] for n in notes}
    assert notes[0]["title"] == "Corner Cafe & Bakery Updated Profile"


def test_business_profile_update_requires_business(db, make_user):
    with pytest.raises(AuthError):
        business.update_business_profile(make_user()["id"], business_name="Nope")


def test_list_and_mark_read(db):
    notifications.fan_out(["u1"], "First", "m", kind="system")
    notifications.fan_out(["u2"], "Other", "m", kind="system")

    inbox = notifications.list_notifications("u1")
    assert [n["title"] for n in inbox] == ["First"]
    assert inbox[0]["isRead"] is False

    read = notifications.mark_as_read(inbox[0]["id"], "u1")
    assert read["isRead"] is True

    with pytest.raises(NotFoundError):
        notifications.mark_as_read(inbox[0]["id"], "u2")
