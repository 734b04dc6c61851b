"""
Conversation store.

A chat session is addressed by a random UUID and holds an append-only list of
messages. Appends use $push so concurrent senders never overwrite each other.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from access import authorize
from database import CHATS, create_document, get_document, get_documents, serialize_doc, store_operation, update_document, utcnow
from errors import NotFound
from schemas import Chat, Principal

logger = logging.getLogger(__name__)


def serialize_chat(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(doc)
    doc.pop("_id", None)
    return serialize_doc(doc)


class ConversationStore:
    def __init__(self, db: Database):
        self.db = db

    def _fetch(self, session_id: str) -> Dict[str, Any]:
        doc = get_document(self.db, CHATS, {"session_id": session_id})
        if doc is None:
            raise NotFound("Chat session")
        return doc

    @store_operation
    def create_session(self, actor: Principal, role: Optional[str] = None) -> Dict[str, Any]:
        authorize(actor, "conversation:create")
        chat = Chat(session_id=str(uuid.uuid4()), owner_id=actor.id, role=role or actor.role)
        create_document(self.db, CHATS, chat)
        logger.info("Chat session %s created for %s", chat.session_id, actor.id)
        return serialize_chat(self._fetch(chat.session_id))

    @store_operation
    def get_session(self, actor: Principal, session_id: str) -> Dict[str, Any]:
        doc = self._fetch(session_id)
        authorize(actor, "conversation:read", doc)
        return serialize_chat(doc)

    @store_operation
    def append_message(self, actor: Principal, session_id: str, text: str, from_bot: bool = False) -> Dict[str, Any]:
        doc = self._fetch(session_id)
        authorize(actor, "conversation:append", doc)
        message = {
            "id": str(uuid.uuid4()),
            "text": text,
            "from_bot": from_bot,
            "sent_at": utcnow(),
        }
        if update_document(self.db, CHATS, {"_id": doc["_id"]}, {"$push": {"messages": message}}) is None:
            # deleted between the read and the push
            raise NotFound("Chat session")
        return message

    @store_operation
    def list_by_owner(self, actor: Principal, owner_id: str) -> List[Dict[str, Any]]:
        """Sessions of one principal, most recently updated first."""
        authorize(actor, "conversation:list", {"owner_id": owner_id})
        docs = get_documents(self.db, CHATS, {"owner_id": owner_id}, sort=[("updated_at", -1)])
        return [serialize_chat(d) for d in docs]

    @store_operation
    def delete_session(self, actor: Principal, session_id: str):
        doc = self._fetch(session_id)
        authorize(actor, "conversation:delete", doc)
        self.db[CHATS].delete_one({"_id": doc["_id"]})
        logger.info("Chat session %s deleted by %s", session_id, actor.id)
