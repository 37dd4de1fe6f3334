import pytest

import offers
from errors import ValidationError
from search import rank, search


@pytest.fixture()
def catalogue(db, make_business, make_user):
    unverified = make_business(
        business_name="Sunrise CAFE", email="sunrise@example.com", address="Park Road", pincode="110001",
        category="Food", verified=False,
    )
    verified = make_business(
        business_name="Blue Cafe", email="blue@example.com", address="Lake View", pincode="110002",
        category="Food", verified=True,
    )
    hardware = make_business(
        business_name="Nuts and Bolts", email="nuts@example.com", address="Cafe Lane", pincode="110003",
        category="Hardware", verified=True,
    )
    shopper = make_user(name="Just A Shopper")
    return {
        "unverified": unverified,
        "verified": verified,
        "hardware": hardware,
        "shopper": shopper,
        "unverified_post": offers.create_post(unverified, content="Free cafe latte"),
        "verified_post": offers.create_post(verified, content="Cake and coffee combo"),
        "shopper_post": offers.create_post(shopper, content="Selling a cafe table", location="Park Road"),
    }


def test_search_requires_some_filter(db):
    with pytest.raises(ValidationError):
        search(q="  ", category="", location=None)


def test_text_search_matches_businesses_and_posts(catalogue):
    results = search(q="cafe")

    businesses = [r for r in results if r["type"] == "business"]
    posts = [r for r in results if r["type"] == "post"]
    assert {b["id"] for b in businesses} == {
        catalogue["unverified"]["id"], catalogue["verified"]["id"], catalogue["hardware"]["id"]
    }
    assert {p["id"] for p in posts} == {
        catalogue["unverified_post"]["id"], catalogue["verified_post"]["id"], catalogue["shopper_post"]["id"]
    }


def test_results_are_verified_first_and_otherwise_stable(catalogue):
    results = search(q="cafe")

    ranks = [rank(r) for r in results]
    assert ranks == sorted(ranks)
    assert results[0]["type"] == "business" and results[0]["isVerified"]
    assert results[1]["type"] == "business" and results[1]["isVerified"]
    verified_posts = [r for r in results if rank(r) == 1]
    assert [p["id"] for p in verified_posts] == [catalogue["verified_post"]["id"]]
    tail = [r for r in results if rank(r) == 2]
    # Unverified businesses stay ahead of unverified posts, as concatenated.
    assert tail[0]["id"] == catalogue["unverified"]["id"]
    assert all(r["type"] == "post" for r in tail[1:])


def test_category_is_a_strict_filter(catalogue):
    results = search(q="cafe", category="food")

    post_ids = {r["id"] for r in results if r["type"] == "post"}
    assert catalogue["shopper_post"]["id"] not in post_ids
    business_ids = {r["id"] for r in results if r["type"] == "business"}
    assert business_ids == {catalogue["unverified"]["id"], catalogue["verified"]["id"]}


def test_location_only_search(catalogue):
    results = search(location="park road")

    assert {r["id"] for r in results} == {
        catalogue["unverified"]["id"], catalogue["unverified_post"]["id"], catalogue["shopper_post"]["id"]
    }


def test_filters_without_business_matches_return_no_businesses(catalogue):
    results = search(category="Toys")

    assert results == []


def test_name_only_business_match_keeps_its_details(db, make_business):
    owner = make_business(business_name="Corner Bakery", address="Hill Road", category="Food")
    db["user"].update_one({"email": owner["email"]}, {"$set": {"name": "Greg Cafe"}})

    results = search(q="greg")

    assert len(results) == 1
    assert results[0]["id"] == owner["id"]
    assert results[0]["category"] == "Food"
    assert results[0]["description"] == "Hill Road"


def test_filtered_out_business_matched_by_name_keeps_its_category(catalogue):
    results = search(q="blue cafe", category="hardware")

    blue = [r for r in results if r["id"] == catalogue["verified"]["id"]]
    assert len(blue) == 1
    assert blue[0]["category"] == "Food"
    assert blue[0]["description"] == "Lake View"


def test_user_input_is_not_a_regex(catalogue):
    assert search(q="caf.") == []
