"""Builds every component from one Settings object."""

from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database

from access import CUSTOMER, SELLER
from assistant import ChatAssistant, Completion, GeminiCompletion
from config import Settings
from conversations import ConversationStore
from credentials import CredentialStore
from database import connect, ensure_indexes
from listings import ListingStore
from profiles import CustomerRegistry, SellerRegistry
from registration import RegistrationCoordinator
from security import PasswordHasher, TokenSigner


class Services:
    def __init__(self, settings: Settings, client: MongoClient, db: Database, completion: Optional[Completion] = None):
        self.settings = settings
        self.client = client
        self.db = db
        ensure_indexes(db)

        self.credentials = CredentialStore(
            db,
            PasswordHasher(settings.bcrypt_rounds),
            TokenSigner(settings.jwt_secret, settings.jwt_expires_in),
            settings.min_password_length,
        )
        self.sellers = SellerRegistry(db, client, settings.use_transactions)
        self.customers = CustomerRegistry(db, client, settings.use_transactions)
        self.registration = RegistrationCoordinator(
            client, db, self.credentials,
            {SELLER: self.sellers, CUSTOMER: self.customers},
            use_transactions=settings.use_transactions,
        )
        self.listings = ListingStore(db)
        self.conversations = ConversationStore(db)
        self.assistant = ChatAssistant(
            self.conversations,
            completion or GeminiCompletion(settings.gemini_api_key, settings.gemini_model),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Services":
        client, db = connect(settings)
        return cls(settings, client, db)
