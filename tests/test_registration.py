from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

import database
from conftest import customer_body, property_body, seller_body
from errors import AuthorizationDenied, Conflict, DependencyUnavailable, NotFound, ValidationFailed


def test_seller_registration_creates_paired_records(services, db):
    summary = services.registration.register_profile("seller", seller_body())

    assert summary["status"] == "Pending"
    profile = db.seller.find_one({"_id": ObjectId(summary["id"])})
    user = db.user.find_one({"_id": ObjectId(summary["id"])})
    assert profile["username"] == "sam"
    assert user["role"] == "seller"
    assert user["name"] == "Sam Seller"
    assert user["password_hash"] != "password123"
    assert "password" not in profile


def test_registration_ignores_requested_status(services, db):
    summary = services.registration.register_profile("seller", seller_body(status="Approved"))
    assert db.seller.find_one({"_id": ObjectId(summary["id"])})["status"] == "Pending"


def test_customer_is_readable_through_both_stores(services, register_customer):
    customer = register_customer()
    assert services.customers.get(customer, customer.id)["email"] == "cara@example.com"
    assert services.credentials.get(customer.id)["role"] == "customer"


def test_email_is_stored_lower_case(services, db):
    summary = services.registration.register_profile("customer", customer_body(email="Cara@Example.COM"))
    assert db.user.find_one({"_id": ObjectId(summary["id"])})["email"] == "cara@example.com"


def test_duplicate_seller_email_conflicts(services, db):
    services.registration.register_profile("seller", seller_body())
    with pytest.raises(Conflict, match="email or username"):
        services.registration.register_profile("seller", seller_body(username="other"))
    assert db.seller.count_documents({"email": "sam@example.com"}) == 1
    assert db.user.count_documents({"email": "sam@example.com"}) == 1


def test_duplicate_seller_username_conflicts(services, db):
    services.registration.register_profile("seller", seller_body())
    with pytest.raises(Conflict):
        services.registration.register_profile("seller", seller_body(email="new@example.com"))
    assert db.seller.count_documents({}) == 1


def test_email_taken_by_other_role_conflicts(services, db):
    services.registration.register_profile("customer", customer_body(email="shared@example.com"))
    with pytest.raises(Conflict, match="User with this email already exists"):
        services.registration.register_profile("seller", seller_body(email="shared@example.com"))
    assert db.seller.count_documents({}) == 0


def test_short_password_rejected_before_any_write(services, db):
    with pytest.raises(ValidationFailed) as exc:
        services.registration.register_profile("customer", customer_body(password="abc"))
    assert exc.value.errors[0]["field"] == "password"
    assert db.customer.count_documents({}) == 0


def test_failed_user_insert_rolls_back_profile(services, db, monkeypatch):
    real_create = database.create_document

    def flaky_create(db_, collection_name, data, session=None):
        if collection_name == database.USERS:
            raise ServerSelectionTimeoutError("primary unreachable")
        return real_create(db_, collection_name, data, session=session)

    monkeypatch.setattr(database, "create_document", flaky_create)

    with pytest.raises(DependencyUnavailable):
        services.registration.register_profile("seller", seller_body())
    assert db.seller.count_documents({}) == 0
    assert db.user.count_documents({}) == 0


def test_unique_index_violation_maps_to_conflict():
    @database.store_operation
    def insert():
        raise DuplicateKeyError("E11000 duplicate key", 11000, {"keyValue": {"email": "x@example.com"}})

    with pytest.raises(Conflict, match="The email 'x@example.com' already exists"):
        insert()


def test_server_transaction_used_when_enabled():
    client = MagicMock()
    session = client.start_session.return_value.__enter__.return_value

    with database.transaction(client, MagicMock(), enabled=True) as uow:
        assert uow.session is session

    session.start_transaction.assert_called_once_with()


def test_unregister_seller_cascades(services, db, admin, register_seller, register_customer):
    seller = register_seller()
    other = register_seller(email="other@example.com", username="other")
    services.listings.create(seller, property_body())
    services.listings.create(other, property_body())
    services.conversations.create_session(seller)

    removed = services.registration.unregister(admin, "seller", seller.id)

    assert removed == {"profile": 1, "user": 1, "properties": 1, "chats": 1}
    assert db.seller.count_documents({}) == 1
    assert db.user.count_documents({"_id": ObjectId(seller.id)}) == 0
    assert db.property.count_documents({"owner_id": other.id}) == 1
    with pytest.raises(NotFound):
        services.credentials.get(seller.id)


def test_unregister_requires_admin(services, register_customer):
    customer = register_customer()
    with pytest.raises(AuthorizationDenied):
        services.registration.unregister(customer, "customer", customer.id)


def test_unregister_missing_profile(services, admin):
    with pytest.raises(NotFound, match="Customer not found"):
        services.registration.unregister(admin, "customer", str(ObjectId()))


def test_failed_cascade_restores_deleted_records(services, db, admin, register_customer, monkeypatch):
    customer = register_customer()
    services.conversations.create_session(customer)
    real_delete_many = database.UnitOfWork.delete_many

    def flaky_delete_many(self, collection_name, filter_dict):
        if collection_name == database.CHATS:
            raise ServerSelectionTimeoutError("primary unreachable")
        return real_delete_many(self, collection_name, filter_dict)

    monkeypatch.setattr(database.UnitOfWork, "delete_many", flaky_delete_many)

    with pytest.raises(DependencyUnavailable):
        services.registration.unregister(admin, "customer", customer.id)
    assert db.customer.count_documents({"_id": ObjectId(customer.id)}) == 1
    assert db.user.count_documents({"_id": ObjectId(customer.id)}) == 1


def test_delete_principal_removes_paired_profile(services, db, admin, register_customer):
    customer = register_customer()
    services.registration.delete_principal(admin, customer.id)
    assert db.customer.count_documents({}) == 0
    assert db.user.count_documents({"role": "customer"}) == 0


def test_delete_principal_without_profile(services, db, admin):
    from schemas import UserCreate
    created = services.credentials.create_principal(
        admin, UserCreate(role="seller", name="Loose End", email="loose@example.com", password="secret1"),
    )
    removed = services.registration.delete_principal(admin, created["id"])
    assert removed["user"] == 1
    assert removed["profile"] == 0


def test_admin_email_and_name_change_reaches_profile(services, db, admin, register_seller):
    seller = register_seller()

    updated = services.registration.update_principal(admin, seller.id, {"email": "new@example.com", "name": "Samuel Van Seller"})

    assert updated["email"] == "new@example.com"
    profile = db.seller.find_one({"_id": ObjectId(seller.id)})
    assert profile["email"] == "new@example.com"
    assert (profile["first_name"], profile["last_name"]) == ("Samuel", "Van Seller")
    assert services.credentials.authenticate("new@example.com", "password123")["user"]["id"] == seller.id


def test_role_change_refused_while_profile_exists(services, db, admin, register_seller):
    seller = register_seller()

    with pytest.raises(Conflict, match="seller profile"):
        services.registration.update_principal(admin, seller.id, {"role": "customer"})
    assert db.user.find_one({"_id": ObjectId(seller.id)})["role"] == "seller"


def test_role_change_allowed_without_profile(services, admin):
    from schemas import UserCreate
    created = services.credentials.create_principal(
        admin, UserCreate(role="seller", name="Loose End", email="loose@example.com", password="secret1"),
    )
    assert services.registration.update_principal(admin, created["id"], {"role": "customer"})["role"] == "customer"


def test_profile_owner_name_needs_two_parts(services, db, admin, register_customer):
    customer = register_customer()
    with pytest.raises(ValidationFailed):
        services.registration.update_principal(admin, customer.id, {"name": "Cher"})
    assert db.user.find_one({"_id": ObjectId(customer.id)})["name"] == "Cara Customer"


def test_principal_update_rejects_nulls(services, db, admin, register_customer):
    customer = register_customer()
    with pytest.raises(ValidationFailed) as exc:
        services.registration.update_principal(admin, customer.id, {"email": None})
    assert exc.value.errors == [{"field": "email", "message": "email cannot be null"}]
    assert db.user.find_one({"_id": ObjectId(customer.id)})["email"] == "cara@example.com"


def test_profile_update_rejects_null_email(services, register_seller):
    seller = register_seller()
    with pytest.raises(ValidationFailed):
        services.sellers.update(seller, seller.id, {"email": None})
    assert services.credentials.authenticate("sam@example.com", "password123")["user"]["id"] == seller.id


def test_failed_user_mirror_restores_profile(services, db, register_customer, monkeypatch):
    customer = register_customer()
    real_update = database.update_by_id

    def flaky_update(db_, collection_name, _id, updates, session=None):
        if collection_name == database.USERS:
            raise ServerSelectionTimeoutError("primary unreachable")
        return real_update(db_, collection_name, _id, updates, session=session)

    monkeypatch.setattr(database, "update_by_id", flaky_update)

    with pytest.raises(DependencyUnavailable):
        services.customers.update(customer, customer.id, {"email": "cara.new@example.com", "first_name": "Carla"})
    profile = db.customer.find_one({"_id": ObjectId(customer.id)})
    assert profile["email"] == "cara@example.com"
    assert profile["first_name"] == "Cara"
    assert db.user.find_one({"_id": ObjectId(customer.id)})["email"] == "cara@example.com"
