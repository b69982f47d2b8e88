import pytest

from routers.search import parse_price_range


@pytest.fixture
def catalog(make_product, make_category, db, user):
    tee = make_product(name="Graphic Tee", price=200.0, stocks={"md": 2})
    hoodie = make_product(name="Zip Hoodie", price=900.0, stocks={"lg": 1})
    sold_out = make_product(name="Plain Tee", price=150.0)
    make_product(name="Hidden Tee", price=100.0, stocks={"md": 9}, active=False)
    make_category("Tops", products=[tee, sold_out])
    db["rating"].insert_many([
        {"user_id": user["_id"], "product_id": tee["_id"], "stars": 5},
        {"user_id": user["_id"], "product_id": hoodie["_id"], "stars": 2},
    ])
    return {"tee": tee, "hoodie": hoodie, "sold_out": sold_out}


def _names(res):
    return sorted(p["name"] for p in res.json()["products"])


def test_parse_price_range():
    assert parse_price_range("100-500") == {"$gte": 100, "$lte": 500}
    assert parse_price_range("abc") is None
    assert parse_price_range("1-x") is None


def test_search_by_name_is_case_insensitive(anon_client, catalog):
    res = anon_client.get("/api/search", params={"search": "tee"})
    assert _names(res) == ["Graphic Tee", "Plain Tee"]


def test_search_text_is_literal(anon_client, catalog):
    assert _names(anon_client.get("/api/search", params={"search": ".*"})) == []


def test_filters(anon_client, catalog):
    assert _names(anon_client.get("/api/search", params={"in_stock": "true"})) == ["Graphic Tee", "Zip Hoodie"]
    assert _names(anon_client.get("/api/search", params={"size": "lg"})) == ["Zip Hoodie"]
    assert _names(anon_client.get("/api/search", params={"price": "100-300"})) == ["Graphic Tee", "Plain Tee"]
    assert _names(anon_client.get("/api/search", params={"category": "Tops"})) == ["Graphic Tee", "Plain Tee"]
    assert _names(anon_client.get("/api/search", params={"ratings": "4"})) == ["Graphic Tee"]


def test_filters_combine(anon_client, catalog):
    res = anon_client.get("/api/search", params={"category": "Tops", "in_stock": "true"})
    assert _names(res) == ["Graphic Tee"]


def test_menu_categories(anon_client, make_category):
    make_category("Tops", show_in_menu=True)
    make_category("Bottoms")
    res = anon_client.get("/api/search/categories")
    assert [c["name"] for c in res.json()["categories"]] == ["Tops"]
