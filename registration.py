"""
Registration coordinator.

Seller and customer accounts are two documents, a profile and a user record
sharing one _id. They are created and removed together inside a single
unit of work so neither can exist without the other.
"""

import logging
from typing import Any, Dict, Union

from pymongo import MongoClient
from pymongo.database import Database

from access import SELLER, authorize
from credentials import CredentialStore, public_user
from database import CHATS, PROPERTIES, USERS, store_operation, to_object_id, transaction, utcnow
from errors import Conflict, NotFound, ValidationFailed, reject_nulls
from profiles import ProfileRegistry
from schemas import USER_REQUIRED, CustomerRegistration, Principal, SellerRegistration

logger = logging.getLogger(__name__)


def split_name(name: str) -> Dict[str, str]:
    """Profile name fields for a user's display name; the first word is the first name."""
    first, _, last = name.strip().partition(" ")
    if not last.strip():
        raise ValidationFailed("Validation failed", errors=[
            {"field": "name", "message": "Name must include a first and last name for users with a profile"},
        ])
    return {"first_name": first, "last_name": last.strip()}


class RegistrationCoordinator:
    def __init__(self, client: MongoClient, db: Database, credentials: CredentialStore,
                 registries: Dict[str, ProfileRegistry], use_transactions: bool = True):
        self.client = client
        self.db = db
        self.credentials = credentials
        self.registries = registries
        self.use_transactions = use_transactions

    def unit_of_work(self):
        return transaction(self.client, self.db, enabled=self.use_transactions)

    @store_operation
    def register_profile(self, kind: str, body: Union[SellerRegistration, CustomerRegistration]) -> Dict[str, Any]:
        """Create the profile and its user record atomically; returns the public summary."""
        registry = self.registries[kind]
        authorize(None, f"{kind}:register")

        fields = body.model_dump(exclude={"password", "status", "registered_at"})
        fields["registered_at"] = utcnow()
        if kind == SELLER:
            fields["status"] = "Pending"
        # hashing is slow; do it before any write is in flight
        user = self.credentials.new_user(
            role=kind,
            name=f"{body.first_name} {body.last_name}",
            email=body.email,
            password=body.password,
        )

        with self.unit_of_work() as uow:
            for field in registry.unique_fields:
                if uow.find_one(registry.collection, {field: fields[field]}):
                    what = "email or username" if kind == SELLER else field
                    raise Conflict(f"{registry.entity} with this {what} already exists")
            if uow.find_one(USERS, {"email": fields["email"]}):
                raise Conflict("User with this email already exists")

            profile_id = uow.insert(registry.collection, fields)
            uow.insert(USERS, {"_id": profile_id, **user.model_dump()})

        logger.info("Registered %s %s", kind, profile_id)
        summary = {
            "id": str(profile_id),
            "first_name": fields["first_name"],
            "last_name": fields["last_name"],
            "email": fields["email"],
        }
        if kind == SELLER:
            summary.update(username=fields["username"], status=fields["status"])
        return summary

    @store_operation
    def update_principal(self, actor: Principal, principal_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Admin edit of a user record; email and name changes reach the paired profile."""
        authorize(actor, "principal:update")
        reject_nulls(updates, USER_REQUIRED)
        _id = to_object_id(principal_id, "User")

        with self.unit_of_work() as uow:
            doc = uow.find_one(USERS, {"_id": _id})
            if doc is None:
                raise NotFound("User")
            if not updates:
                return public_user(doc)

            registry = self.registries.get(doc["role"])
            profile = uow.find_one(registry.collection, {"_id": _id}) if registry else None
            if profile is not None and updates.get("role", doc["role"]) != doc["role"]:
                raise Conflict(f"Cannot change the role of a user with a {doc['role']} profile")

            mirrored = {}
            if "email" in updates and updates["email"] != doc["email"]:
                if uow.find_one(USERS, {"email": updates["email"], "_id": {"$ne": _id}}):
                    raise Conflict("User with this email already exists")
                if profile is not None and uow.find_one(registry.collection, {"email": updates["email"], "_id": {"$ne": _id}}):
                    raise Conflict(f"{registry.entity} with this email already exists")
                mirrored["email"] = updates["email"]
            if profile is not None and "name" in updates:
                mirrored.update(split_name(updates["name"]))

            updated = uow.update(USERS, _id, updates)
            if profile is not None and mirrored:
                uow.update(registry.collection, _id, mirrored)

        logger.info("User %s updated by %s (%s)", _id, actor.id, ", ".join(sorted(updates)))
        return public_user(updated)

    def _remove_account(self, uow, principal_id, kind: str = None) -> Dict[str, int]:
        owner = str(principal_id)
        removed = {"profile": 0, "user": 0, "properties": 0, "chats": 0}
        if kind:
            removed["profile"] = uow.delete_many(self.registries[kind].collection, {"_id": principal_id})
        removed["user"] = uow.delete_many(USERS, {"_id": principal_id})
        if kind == SELLER:
            removed["properties"] = uow.delete_many(PROPERTIES, {"owner_id": owner})
        removed["chats"] = uow.delete_many(CHATS, {"owner_id": owner})
        return removed

    @store_operation
    def unregister(self, actor: Principal, kind: str, profile_id: str) -> Dict[str, int]:
        """Delete a profile, its user record and everything it owns."""
        registry = self.registries[kind]
        authorize(actor, f"{kind}:delete")
        _id = to_object_id(profile_id, registry.entity)

        with self.unit_of_work() as uow:
            if uow.find_one(registry.collection, {"_id": _id}) is None:
                raise NotFound(registry.entity)
            removed = self._remove_account(uow, _id, kind)

        logger.info("Deleted %s %s by %s: %s", kind, _id, actor.id, removed)
        return removed

    @store_operation
    def delete_principal(self, actor: Principal, principal_id: str) -> Dict[str, int]:
        """Delete a user; a profile sharing its id goes with it."""
        authorize(actor, "principal:delete")
        _id = to_object_id(principal_id, "User")

        with self.unit_of_work() as uow:
            doc = uow.find_one(USERS, {"_id": _id})
            if doc is None:
                raise NotFound("User")
            registry = self.registries.get(doc["role"])
            kind = doc["role"] if registry and uow.find_one(registry.collection, {"_id": _id}) else None
            removed = self._remove_account(uow, _id, kind)

        logger.info("Deleted user %s by %s: %s", _id, actor.id, removed)
        return removed
