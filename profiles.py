"""
Identity registries: seller and customer profiles.

Profiles share their _id with a user record; creation and deletion go through
the registration coordinator so the pair stays consistent.
"""

import logging
from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.database import Database

from access import authorize
from database import (
    CUSTOMERS, SELLERS, USERS, get_document, get_documents, serialize_doc, store_operation, to_object_id, transaction,
    update_by_id,
)
from errors import Conflict, NotFound, reject_nulls
from schemas import CUSTOMER_REQUIRED, SELLER_REQUIRED, Principal

logger = logging.getLogger(__name__)


class ProfileRegistry:
    kind = ""
    collection = ""
    entity = ""
    unique_fields = ("email",)
    required_fields = ()

    def __init__(self, db: Database, client: MongoClient, use_transactions: bool = True):
        self.db = db
        self.client = client
        self.use_transactions = use_transactions

    def unit_of_work(self):
        return transaction(self.client, self.db, enabled=self.use_transactions)

    def _fetch(self, profile_id) -> Dict[str, Any]:
        doc = get_document(self.db, self.collection, {"_id": to_object_id(profile_id, self.entity)})
        if doc is None:
            raise NotFound(self.entity)
        return doc

    @store_operation
    def get(self, actor: Principal, profile_id: str) -> Dict[str, Any]:
        authorize(actor, f"{self.kind}:read", {"id": profile_id})
        return serialize_doc(self._fetch(profile_id))

    def _query(self, **filters) -> Dict[str, Any]:
        return {}

    @store_operation
    def list(self, actor: Principal, **filters) -> List[Dict[str, Any]]:
        authorize(actor, f"{self.kind}:list")
        docs = get_documents(self.db, self.collection, self._query(**filters), sort=[("created_at", -1)])
        return [serialize_doc(d) for d in docs]

    def find_conflict(self, fields: Dict[str, Any], exclude_id=None) -> Optional[str]:
        """Name of the first unique field whose value another profile already holds."""
        for field in self.unique_fields:
            if fields.get(field) is None:
                continue
            query = {field: fields[field]}
            if exclude_id is not None:
                query["_id"] = {"$ne": exclude_id}
            if get_document(self.db, self.collection, query):
                return field
        return None

    @store_operation
    def update(self, actor: Principal, profile_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Merge the supplied fields; omitted fields keep their stored values."""
        authorize(actor, f"{self.kind}:update", {"id": profile_id})
        reject_nulls(updates, self.required_fields)
        doc = self._fetch(profile_id)
        if not updates:
            return serialize_doc(doc)

        field = self.find_conflict(updates, exclude_id=doc["_id"])
        if field:
            raise Conflict(f"{self.entity} with this {field} already exists")
        email_changed = updates.get("email") is not None and updates["email"] != doc["email"]
        if email_changed:
            if get_document(self.db, USERS, {"email": updates["email"], "_id": {"$ne": doc["_id"]}}):
                raise Conflict("User with this email already exists")

        # login reads the user record, so it moves together with the profile
        mirrored = {}
        if email_changed:
            mirrored["email"] = updates["email"]
        if {"first_name", "last_name"} & updates.keys():
            first = updates.get("first_name", doc["first_name"])
            last = updates.get("last_name", doc["last_name"])
            mirrored["name"] = f"{first} {last}"

        with self.unit_of_work() as uow:
            updated = uow.update(self.collection, doc["_id"], updates)
            if mirrored:
                uow.update(USERS, doc["_id"], mirrored)
        logger.info("%s %s updated by %s", self.entity, doc["_id"], actor.id)
        return serialize_doc(updated)


class SellerRegistry(ProfileRegistry):
    kind = "seller"
    collection = SELLERS
    entity = "Seller"
    unique_fields = ("email", "username")
    required_fields = SELLER_REQUIRED

    def _query(self, status: Optional[str] = None, **_) -> Dict[str, Any]:
        return {"status": status} if status else {}

    @store_operation
    def set_status(self, actor: Principal, seller_id: str, status: str) -> Dict[str, Any]:
        authorize(actor, "seller:set_status")
        doc = self._fetch(seller_id)
        update_by_id(self.db, SELLERS, doc["_id"], {"status": status})
        logger.info("Seller %s status set to %s by %s", doc["_id"], status, actor.id)
        return {"id": str(doc["_id"]), "status": status}


class CustomerRegistry(ProfileRegistry):
    kind = "customer"
    collection = CUSTOMERS
    entity = "Customer"
    required_fields = CUSTOMER_REQUIRED
