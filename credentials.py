"""
Credential store: one authentication record per principal, login and
password management.
"""

import logging
from typing import Any, Dict, Optional

from pymongo.database import Database

from access import authorize
from database import USERS, create_document, get_document, store_operation, to_object_id, update_by_id
from errors import AuthenticationFailed, Conflict, NotFound, ValidationFailed
from schemas import Principal, User, UserCreate
from security import PasswordHasher, TokenSigner

logger = logging.getLogger(__name__)

INVALID_LOGIN = "Invalid email or password"


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    """User fields safe to return; the password hash never leaves the store."""
    return {"id": str(doc["_id"]), "name": doc["name"], "email": doc["email"], "role": doc["role"]}


class CredentialStore:
    def __init__(self, db: Database, hasher: PasswordHasher, signer: TokenSigner, min_password_length: int = 6):
        self.db = db
        self.hasher = hasher
        self.signer = signer
        self.min_password_length = min_password_length

    def check_password(self, password: Optional[str], field: str = "password"):
        if not password or len(password) < self.min_password_length:
            message = f"Password must be at least {self.min_password_length} characters long"
            raise ValidationFailed("Validation failed", errors=[{"field": field, "message": message}])

    def new_user(self, *, role: str, name: str, email: str, password: str) -> User:
        self.check_password(password)
        return User(role=role, name=name, email=email, password_hash=self.hasher.hash(password))

    @store_operation
    def get(self, principal_id) -> Dict[str, Any]:
        doc = get_document(self.db, USERS, {"_id": to_object_id(principal_id, "User")})
        if doc is None:
            raise NotFound("User")
        return doc

    @store_operation
    def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return get_document(self.db, USERS, {"email": email.strip().lower()})

    def resolve(self, token: str) -> Principal:
        """Turn a bearer token into the principal it was issued to."""
        claims = self.signer.verify(token)
        try:
            doc = self.get(claims["sub"])
        except NotFound:
            raise AuthenticationFailed("User not found.")
        # the stored role wins over the role captured in the token
        return Principal(id=str(doc["_id"]), role=doc["role"], name=doc["name"], email=doc["email"])

    def authenticate(self, email: str, password: str) -> Dict[str, Any]:
        doc = self.find_by_email(email)
        if doc is None:
            self.hasher.burn(password)
            logger.info("Login rejected for unknown account")
            raise AuthenticationFailed(INVALID_LOGIN)
        if not self.hasher.verify(password, doc["password_hash"]):
            logger.info("Login rejected for user %s", doc["_id"])
            raise AuthenticationFailed(INVALID_LOGIN)

        token = self.signer.issue(str(doc["_id"]), doc["role"])
        logger.info("User %s logged in", doc["_id"])
        return {"user": public_user(doc), "token": token}

    @store_operation
    def create_principal(self, actor: Principal, body: UserCreate) -> Dict[str, Any]:
        """Admin-issued account of any role; a single write with no profile."""
        authorize(actor, "principal:create")
        if self.find_by_email(body.email):
            raise Conflict("User with this email already exists")
        user = self.new_user(role=body.role, name=body.name, email=body.email, password=body.password)
        _id = create_document(self.db, USERS, user)
        logger.info("Admin %s created %s user %s", actor.id, body.role, _id)
        return public_user({"_id": _id, **user.model_dump()})

    @store_operation
    def change_password(self, actor: Principal, principal_id: str, current_password: Optional[str], new_password: str):
        authorize(actor, "principal:change_password", {"id": principal_id})
        doc = self.get(principal_id)

        # an admin resetting someone else's password is not asked for theirs
        if actor.id == str(doc["_id"]):
            if not current_password or not self.hasher.verify(current_password, doc["password_hash"]):
                raise AuthenticationFailed("Current password is incorrect")

        self.check_password(new_password, field="new_password")
        update_by_id(self.db, USERS, doc["_id"], {"password_hash": self.hasher.hash(new_password)})
        logger.info("Password changed for user %s by %s", doc["_id"], actor.id)

    def me(self, principal: Principal) -> Dict[str, Any]:
        authorize(principal, "principal:read_self")
        return public_user(self.get(principal.id))
