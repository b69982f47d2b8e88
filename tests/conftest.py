import os

os.environ["APP_ENV"] = "test"
os.environ["DATABASE_TRANSACTIONS"] = "false"

from datetime import timedelta  # noqa: E402

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import config  # noqa: E402
import database  # noqa: E402
import mailer  # noqa: E402
import media  # noqa: E402
from main import app  # noqa: E402
from schemas import SIZES  # noqa: E402
from security import create_token  # noqa: E402


@pytest.fixture(autouse=True)
def db(monkeypatch):
    monkeypatch.setattr(config, "DATABASE_TRANSACTIONS", False)
    client = mongomock.MongoClient()
    mock_db = client["storefront_test"]
    database.ensure_indexes(mock_db)
    database.use_database(mock_db)
    yield mock_db
    database.use_database(None)
    client.drop_database("storefront_test")


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    sent = []

    def fake_send(to, subject, body):
        sent.append({"to": to, "subject": subject, "body": body})
        return True

    monkeypatch.setattr(mailer, "send_email", fake_send)
    return sent


@pytest.fixture(autouse=True)
def cdn(monkeypatch):
    """Stand-in for Cloudinary: records uploads and deletions."""
    state = {"uploaded": [], "deleted": []}

    def fake_upload(contents):
        images = []
        for data in contents:
            n = len(state["uploaded"]) + 1
            image = {"url": f"https://cdn.test/img{n}.png", "public_id": f"img{n}"}
            state["uploaded"].append(image)
            images.append(image)
        return images

    def fake_delete(images):
        state["deleted"].extend(img["public_id"] for img in images or [])

    monkeypatch.setattr(media, "upload_images", fake_upload)
    monkeypatch.setattr(media, "delete_images", fake_delete)
    return state


def _client_for(user=None):
    if user is None:
        return TestClient(app)
    token = create_token(user, timedelta(hours=1))
    return TestClient(app, cookies={config.COOKIE_NAME: token})


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="user", **fields):
        counter["n"] += 1
        n = counter["n"]
        doc = {
            "google_id": f"g{n}",
            "email": f"user{n}@example.com",
            "display_name": f"User {n}",
            "first_name": "User",
            "last_name": str(n),
            "role": role,
            "is_banned": False,
            "created_at": database.now_utc(),
        }
        doc.update(fields)
        doc["_id"] = db["user"].insert_one(doc).inserted_id
        return doc

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role="admin")


@pytest.fixture
def anon_client():
    return _client_for()


@pytest.fixture
def user_client(user):
    return _client_for(user)


@pytest.fixture
def admin_client(admin):
    return _client_for(admin)


@pytest.fixture
def client_for():
    return _client_for


@pytest.fixture
def make_product(db):
    def _make(name="Shirt", price=250.0, stocks=None, active=True, description="A shirt"):
        now = database.now_utc()
        product_id = db["product"].insert_one({
            "name": name,
            "description": description,
            "price": price,
            "images": [],
            "active": active,
            "is_deleted": False,
            "deleted_at": None,
            "created_at": now,
            "updated_at": now,
        }).inserted_id
        counts = {size: 0 for size in SIZES}
        counts.update(stocks or {})
        db["stocks"].insert_one({"product_id": product_id, **counts})
        return db["product"].find_one({"_id": product_id})

    return _make


@pytest.fixture
def make_address(db):
    def _make(owner, province="Cebu", is_default=False):
        doc = {
            "user_id": owner["_id"],
            "first_name": "Juan",
            "last_name": "Dela Cruz",
            "region": "Region VII",
            "province": province,
            "city": "Cebu City",
            "address": "123 Mango Ave",
            "postal_code": "6000",
            "address_label": "Home",
            "phone_number": "09171234567",
            "is_default": is_default,
            "created_at": database.now_utc(),
        }
        doc["_id"] = db["address"].insert_one(doc).inserted_id
        return doc

    return _make


@pytest.fixture
def make_category(db):
    def _make(name, products=(), show_in_menu=False):
        category_id = db["category"].insert_one({"name": name, "show_in_menu": show_in_menu}).inserted_id
        for p in products:
            db["category_product"].insert_one({"category_id": category_id, "product_id": p["_id"]})
        return db["category"].find_one({"_id": category_id})

    return _make


@pytest.fixture
def stock_of(db):
    def _stock(product, size):
        return db["stocks"].find_one({"product_id": product["_id"]})[size]

    return _stock
