import pytest
from bson import ObjectId

from errors import AuthenticationFailed, AuthorizationDenied, Conflict, NotFound, ValidationFailed
from schemas import UserCreate
from security import TokenSigner


def test_login_returns_token_bound_to_principal(services, register_customer):
    customer = register_customer(email="a@x.com", password="password1")

    result = services.credentials.authenticate("A@X.com", "password1")

    assert result["user"] == {"id": customer.id, "name": "Cara Customer", "email": "a@x.com", "role": "customer"}
    claims = services.credentials.signer.verify(result["token"])
    assert claims["sub"] == customer.id
    assert claims["role"] == "customer"
    assert services.credentials.resolve(result["token"]).id == customer.id


def test_login_failures_are_indistinguishable(services, register_customer):
    register_customer(email="a@x.com", password="password1")

    with pytest.raises(AuthenticationFailed) as unknown:
        services.credentials.authenticate("nobody@x.com", "password1")
    with pytest.raises(AuthenticationFailed) as wrong:
        services.credentials.authenticate("a@x.com", "wrongpass")

    assert unknown.value.message == wrong.value.message == "Invalid email or password"


def test_expired_token_rejected(services, register_customer):
    customer = register_customer()
    expired = TokenSigner("test-secret", expires_in=-60).issue(customer.id, customer.role)
    with pytest.raises(AuthenticationFailed, match="Token expired."):
        services.credentials.resolve(expired)


def test_token_signed_with_other_secret_rejected(services, register_customer):
    customer = register_customer()
    forged = TokenSigner("another-secret").issue(customer.id, "admin")
    with pytest.raises(AuthenticationFailed, match="Invalid token."):
        services.credentials.resolve(forged)


def test_token_for_deleted_user_rejected(services, admin, register_customer):
    customer = register_customer()
    token = services.credentials.signer.issue(customer.id, customer.role)
    services.registration.delete_principal(admin, customer.id)
    with pytest.raises(AuthenticationFailed, match="User not found."):
        services.credentials.resolve(token)


def test_stored_role_wins_over_token_role(services, register_customer):
    customer = register_customer()
    token = services.credentials.signer.issue(customer.id, "admin")
    assert services.credentials.resolve(token).role == "customer"


def test_self_service_password_change_needs_current(services, register_customer):
    customer = register_customer(password="password1")

    with pytest.raises(AuthenticationFailed, match="Current password is incorrect"):
        services.credentials.change_password(customer, customer.id, None, "newpassword")
    with pytest.raises(AuthenticationFailed):
        services.credentials.change_password(customer, customer.id, "nope", "newpassword")

    services.credentials.change_password(customer, customer.id, "password1", "newpassword")
    assert services.credentials.authenticate("cara@example.com", "newpassword")["token"]


def test_admin_resets_password_without_current(services, admin, register_customer):
    customer = register_customer()
    services.credentials.change_password(admin, customer.id, None, "resetpass")
    assert services.credentials.authenticate("cara@example.com", "resetpass")


def test_new_password_minimum_length(services, admin, register_customer):
    customer = register_customer()
    with pytest.raises(ValidationFailed) as exc:
        services.credentials.change_password(admin, customer.id, None, "12345")
    assert exc.value.errors == [{"field": "new_password", "message": "Password must be at least 6 characters long"}]


def test_cannot_change_someone_elses_password(services, register_customer, register_seller):
    customer = register_customer()
    seller = register_seller()
    with pytest.raises(AuthorizationDenied):
        services.credentials.change_password(seller, customer.id, "password123", "hijacked1")


def test_admin_creates_and_updates_principal(services, admin):
    created = services.credentials.create_principal(
        admin, UserCreate(role="admin", name="Second Admin", email="two@example.com", password="secret1"),
    )
    assert "password_hash" not in created

    updated = services.registration.update_principal(admin, created["id"], {"name": "Deputy"})
    assert updated["name"] == "Deputy"
    assert updated["email"] == "two@example.com"

    with pytest.raises(Conflict):
        services.registration.update_principal(admin, created["id"], {"email": "admin@example.com"})


def test_create_principal_rejects_duplicate_email(services, admin):
    with pytest.raises(Conflict, match="User with this email already exists"):
        services.credentials.create_principal(
            admin, UserCreate(role="customer", name="Dup", email="admin@example.com", password="secret1"),
        )


def test_non_admin_cannot_issue_accounts(services, register_seller):
    seller = register_seller()
    with pytest.raises(AuthorizationDenied):
        services.credentials.create_principal(
            seller, UserCreate(role="admin", name="Me Too", email="me@example.com", password="secret1"),
        )


def test_password_change_on_foreign_id_is_denied_whether_or_not_it_exists(services, admin, register_customer, register_seller):
    customer = register_customer()
    seller = register_seller()

    with pytest.raises(AuthorizationDenied):
        services.credentials.change_password(seller, customer.id, "password123", "hijacked1")
    with pytest.raises(AuthorizationDenied):
        services.credentials.change_password(seller, str(ObjectId()), "password123", "hijacked1")
    with pytest.raises(NotFound):
        services.credentials.change_password(admin, str(ObjectId()), None, "resetpass")
