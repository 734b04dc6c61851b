"""Listing store: property records owned by sellers."""

import re
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database

from access import SELLER, authorize
from database import PROPERTIES, SELLERS, create_document, get_document, get_documents, serialize_doc, store_operation, to_object_id, update_by_id
from errors import NotFound, ValidationFailed, reject_nulls
from schemas import PROPERTY_REQUIRED, Principal, Property, PropertyCreate, PropertyFilter

logger = logging.getLogger(__name__)

# seller fields embedded in listing responses; a single listing also carries contact details
SELLER_SUMMARY = ("first_name", "last_name", "profile_picture")
SELLER_CONTACT = SELLER_SUMMARY + ("phone", "email")


def build_listing_query(filters: PropertyFilter) -> Dict[str, Any]:
    """Translate filters into a MongoDB query. Unset filters add no constraint."""
    query: Dict[str, Any] = {}
    if filters.type:
        query["type"] = filters.type
    if filters.city:
        query["address.city"] = {"$regex": re.escape(filters.city), "$options": "i"}
    # Price range
    price_filter = {}
    if filters.min_price is not None:
        price_filter["$gte"] = filters.min_price
    if filters.max_price is not None:
        price_filter["$lte"] = filters.max_price
    if price_filter:
        query["price"] = price_filter
    if filters.for_sale is not None:
        query["for_sale"] = filters.for_sale
    if filters.owner_id:
        query["owner_id"] = filters.owner_id
    if filters.min_beds is not None:
        query["beds"] = {"$gte": filters.min_beds}
    if filters.min_baths is not None:
        query["baths"] = {"$gte": filters.min_baths}
    return query


def check_discount(price: Optional[float], discount_price: Optional[float]):
    if discount_price is not None and price is not None and discount_price >= price:
        raise ValidationFailed("Validation failed", errors=[
            {"field": "discount_price", "message": "Discount price must be lower than the regular price"},
        ])


def attach_sellers(db: Database, listings: List[Dict[str, Any]], fields=SELLER_SUMMARY) -> List[Dict[str, Any]]:
    """Embed each listing's seller as `seller`, fetched in one query; None when the seller is gone."""
    ids = {ObjectId(l["owner_id"]) for l in listings if ObjectId.is_valid(l.get("owner_id"))}
    sellers = {}
    if ids:
        docs = get_documents(db, SELLERS, {"_id": {"$in": list(ids)}}, projection={f: 1 for f in fields})
        sellers = {str(d["_id"]): serialize_doc(d) for d in docs}
    for listing in listings:
        listing["seller"] = sellers.get(listing.get("owner_id"))
    return listings


class ListingStore:
    def __init__(self, db: Database):
        self.db = db

    def _fetch(self, listing_id) -> Dict[str, Any]:
        doc = get_document(self.db, PROPERTIES, {"_id": to_object_id(listing_id, "Property")})
        if doc is None:
            raise NotFound("Property")
        return doc

    @store_operation
    def create(self, actor: Principal, body: PropertyCreate) -> Dict[str, Any]:
        authorize(actor, "listing:create")
        if actor.role == SELLER:
            owner_id = actor.id
        elif body.owner_id:
            owner_id = body.owner_id
        else:
            raise ValidationFailed("Validation failed", errors=[
                {"field": "owner_id", "message": "Seller id is required when an admin creates a property"},
            ])
        if get_document(self.db, SELLERS, {"_id": to_object_id(owner_id, "Seller")}) is None:
            raise NotFound("Seller")
        check_discount(body.price, body.discount_price)

        listing = Property(**body.model_dump(exclude={"owner_id"}), owner_id=owner_id)
        _id = create_document(self.db, PROPERTIES, listing)
        logger.info("Property %s created for seller %s by %s", _id, owner_id, actor.id)
        return serialize_doc(self._fetch(_id))

    @store_operation
    def get(self, listing_id: str) -> Dict[str, Any]:
        authorize(None, "listing:read")
        return attach_sellers(self.db, [serialize_doc(self._fetch(listing_id))], SELLER_CONTACT)[0]

    @store_operation
    def list(self, filters: Optional[PropertyFilter] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        authorize(None, "listing:browse")
        query = build_listing_query(filters or PropertyFilter())
        docs = get_documents(self.db, PROPERTIES, query, limit, sort=[("created_at", -1)])
        return attach_sellers(self.db, [serialize_doc(d) for d in docs])

    def list_by_owner(self, owner_id: str) -> List[Dict[str, Any]]:
        return self.list(PropertyFilter(owner_id=owner_id))

    @store_operation
    def update(self, actor: Principal, listing_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Merge the supplied fields into the listing; omitted fields are untouched."""
        doc = self._fetch(listing_id)
        authorize(actor, "listing:update", doc)
        reject_nulls(updates, PROPERTY_REQUIRED)
        if not updates:
            return serialize_doc(doc)
        check_discount(updates.get("price", doc.get("price")), updates.get("discount_price", doc.get("discount_price")))
        updated = update_by_id(self.db, PROPERTIES, doc["_id"], updates)
        logger.info("Property %s updated by %s (%s)", doc["_id"], actor.id, ", ".join(sorted(updates)))
        return serialize_doc(updated)

    @store_operation
    def set_availability(self, actor: Principal, listing_id: str, for_sale: bool) -> Dict[str, Any]:
        doc = self._fetch(listing_id)
        authorize(actor, "listing:set_availability", doc)
        update_by_id(self.db, PROPERTIES, doc["_id"], {"for_sale": for_sale})
        return {"id": str(doc["_id"]), "title": doc["title"], "for_sale": for_sale}

    @store_operation
    def delete(self, actor: Principal, listing_id: str):
        doc = self._fetch(listing_id)
        authorize(actor, "listing:delete", doc)
        self.db[PROPERTIES].delete_one({"_id": doc["_id"]})
        logger.info("Property %s deleted by %s", doc["_id"], actor.id)
