import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import USERS, create_document
from main import app
from schemas import CustomerRegistration, Principal, PropertyCreate, SellerRegistration
from services import Services


class FakeCompletion:
    def __init__(self, answer="Happy to help with that property.", fail=False):
        self.answer = answer
        self.fail = fail
        self.prompts = []

    def complete(self, prompt):
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("quota exceeded")
        return self.answer


@pytest.fixture
def settings():
    # mongomock has no sessions, so the compensating unit of work is what runs here
    return Settings(
        database_url="mongodb://localhost:27017",
        database_name="listings_test",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        use_transactions=False,
    )


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def services(settings, completion):
    client = mongomock.MongoClient(tz_aware=True)
    return Services(settings, client, client[settings.database_name], completion=completion)


@pytest.fixture
def db(services):
    return services.db


@pytest.fixture
def client(services):
    app.state.services = services
    yield TestClient(app)
    app.state.services = None


def seller_body(**overrides):
    data = {
        "first_name": "Sam",
        "last_name": "Seller",
        "email": "sam@example.com",
        "phone": "+1 555 0100",
        "identification": "ID-1234",
        "preferred_languages": ["English"],
        "username": "sam",
        "password": "password123",
    }
    data.update(overrides)
    return SellerRegistration(**data)


def customer_body(**overrides):
    data = {
        "first_name": "Cara",
        "last_name": "Customer",
        "email": "cara@example.com",
        "phone": "+1 555 0199",
        "password": "password123",
    }
    data.update(overrides)
    return CustomerRegistration(**data)


def property_body(**overrides):
    data = {
        "title": "Sunny two bedroom",
        "type": "Residential",
        "description": "Close to the park",
        "address": {"house": "12", "street": "Elm St", "city": "Springfield", "postal_code": "12345"},
        "price": 150000,
        "beds": 2,
        "baths": 1,
        "images": ["front.jpg"],
    }
    data.update(overrides)
    return PropertyCreate(**data)


def as_principal(services, user_id):
    doc = services.credentials.get(user_id)
    return Principal(id=str(doc["_id"]), role=doc["role"], name=doc["name"], email=doc["email"])


@pytest.fixture
def register_seller(services):
    def _register(**overrides):
        summary = services.registration.register_profile("seller", seller_body(**overrides))
        return as_principal(services, summary["id"])
    return _register


@pytest.fixture
def register_customer(services):
    def _register(**overrides):
        summary = services.registration.register_profile("customer", customer_body(**overrides))
        return as_principal(services, summary["id"])
    return _register


@pytest.fixture
def admin(services, db):
    user = services.credentials.new_user(role="admin", name="Ada Admin", email="admin@example.com", password="adminpass")
    _id = create_document(db, USERS, user)
    return as_principal(services, _id)


def bearer(services, principal):
    return {"Authorization": f"Bearer {services.credentials.signer.issue(principal.id, principal.role)}"}
