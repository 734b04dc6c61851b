"""
Database Schemas

Pydantic models for the MongoDB collections and the request bodies that
create or change them.

Each stored model documents its collection:
- User -> "user" collection
- Seller -> "seller" collection
- Customer -> "customer" collection
- Property -> "property" collection
- Chat -> "chat" collection

Update models leave every field optional; handlers dump them with
exclude_unset=True so omitted fields keep their stored value.
"""

from pydantic import BaseModel, Field, EmailStr, field_validator
from typing import Optional, List, Literal
from datetime import datetime

Role = Literal['admin', 'seller', 'customer']
SellerStatus = Literal['Pending', 'Approved', 'Rejected']
PropertyType = Literal['Residential', 'Commercial', 'Industrial']


# Fields an update may change but never clear
USER_REQUIRED = ('role', 'name', 'email')
SELLER_REQUIRED = ('first_name', 'last_name', 'email', 'phone', 'preferred_languages', 'username')
CUSTOMER_REQUIRED = ('first_name', 'last_name', 'email', 'phone')
PROPERTY_REQUIRED = (
    'title', 'type', 'description', 'address', 'for_sale', 'price', 'parking_spot', 'furnished', 'images',
)


def _not_null(v, field_name: str):
    if v is None:
        raise ValueError(f"{field_name} cannot be null")
    return v


class _EmailNormalized(BaseModel):
    @field_validator('email', mode='after', check_fields=False)
    @classmethod
    def _lower_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


# ---------------------------
# Principals
# ---------------------------
class Principal(BaseModel):
    """Authenticated actor resolved from a token."""
    id: str
    role: Role
    name: str
    email: str


class User(_EmailNormalized):
    """
    Credential record, one per principal
    Collection name: "user"
    """
    role: Role
    name: str = Field(..., min_length=1)
    email: EmailStr
    password_hash: str


class LoginRequest(_EmailNormalized):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserCreate(_EmailNormalized):
    role: Role
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str


class UserUpdate(_EmailNormalized):
    role: Optional[Role] = None
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None

    @field_validator(*USER_REQUIRED, mode='before')
    @classmethod
    def _required(cls, v, info):
        return _not_null(v, info.field_name)


class PasswordChange(BaseModel):
    current_password: Optional[str] = None
    new_password: str


# ---------------------------
# Sellers
# ---------------------------
class SocialLinks(BaseModel):
    facebook: Optional[str] = None
    linkedin: Optional[str] = None
    instagram: Optional[str] = None


class Business(BaseModel):
    name: Optional[str] = None
    registration_number: Optional[str] = None
    designation: Optional[str] = None


class Seller(_EmailNormalized):
    """
    Seller profile, paired 1:1 with a "seller" user by _id
    Collection name: "seller"
    """
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    identification: str = Field(..., min_length=1, description="Identification document reference")
    profile_picture: Optional[str] = None
    bio: Optional[str] = None
    social_links: Optional[SocialLinks] = None
    preferred_languages: List[str] = Field(..., min_length=1)
    business: Optional[Business] = None
    username: str = Field(..., min_length=1)
    status: SellerStatus = 'Pending'
    registered_at: Optional[datetime] = None


class SellerRegistration(Seller):
    password: str


class SellerUpdate(_EmailNormalized):
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=1)
    profile_picture: Optional[str] = None
    bio: Optional[str] = None
    social_links: Optional[SocialLinks] = None
    preferred_languages: Optional[List[str]] = Field(None, min_length=1)
    business: Optional[Business] = None
    username: Optional[str] = Field(None, min_length=1)

    @field_validator(*SELLER_REQUIRED, mode='before')
    @classmethod
    def _required(cls, v, info):
        return _not_null(v, info.field_name)


class SellerStatusUpdate(BaseModel):
    status: SellerStatus


# ---------------------------
# Customers
# ---------------------------
class Customer(_EmailNormalized):
    """
    Customer profile, paired 1:1 with a "customer" user by _id
    Collection name: "customer"
    """
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    address: Optional[str] = None
    interests: Optional[List[str]] = None
    registered_at: Optional[datetime] = None


class CustomerRegistration(Customer):
    password: str


class CustomerUpdate(_EmailNormalized):
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = None
    interests: Optional[List[str]] = None

    @field_validator(*CUSTOMER_REQUIRED, mode='before')
    @classmethod
    def _required(cls, v, info):
        return _not_null(v, info.field_name)


# ---------------------------
# Properties
# ---------------------------
class Address(BaseModel):
    house: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)


class Property(BaseModel):
    """
    Property listing owned by a seller
    Collection name: "property"
    """
    title: str = Field(..., min_length=1, description="Listing title")
    type: PropertyType
    description: str = Field(..., min_length=1)
    address: Address
    for_sale: bool = True
    price: float = Field(..., ge=0)
    discount_price: Optional[float] = Field(None, ge=0, description="Must be below price when set")
    beds: Optional[int] = Field(None, ge=0)
    baths: Optional[int] = Field(None, ge=0)
    parking_spot: bool = False
    furnished: bool = False
    images: List[str] = Field(..., min_length=1)
    owner_id: str = Field(..., description="Seller id (stringified ObjectId)")


class PropertyCreate(BaseModel):
    title: str = Field(..., min_length=1)
    type: PropertyType
    description: str = Field(..., min_length=1)
    address: Address
    for_sale: bool = True
    price: float = Field(..., ge=0)
    discount_price: Optional[float] = Field(None, ge=0)
    beds: Optional[int] = Field(None, ge=0)
    baths: Optional[int] = Field(None, ge=0)
    parking_spot: bool = False
    furnished: bool = False
    images: List[str] = Field(..., min_length=1)
    # only honoured for admins; sellers always own what they create
    owner_id: Optional[str] = None


class PropertyUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    type: Optional[PropertyType] = None
    description: Optional[str] = Field(None, min_length=1)
    address: Optional[Address] = None
    for_sale: Optional[bool] = None
    price: Optional[float] = Field(None, ge=0)
    discount_price: Optional[float] = Field(None, ge=0)
    beds: Optional[int] = Field(None, ge=0)
    baths: Optional[int] = Field(None, ge=0)
    parking_spot: Optional[bool] = None
    furnished: Optional[bool] = None
    images: Optional[List[str]] = Field(None, min_length=1)

    @field_validator(*PROPERTY_REQUIRED, mode='before')
    @classmethod
    def _required(cls, v, info):
        return _not_null(v, info.field_name)


class AvailabilityUpdate(BaseModel):
    for_sale: bool


class PropertyFilter(BaseModel):
    type: Optional[PropertyType] = None
    city: Optional[str] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    for_sale: Optional[bool] = None
    owner_id: Optional[str] = None
    min_beds: Optional[int] = Field(None, ge=0)
    min_baths: Optional[int] = Field(None, ge=0)


# ---------------------------
# Chats
# ---------------------------
class Message(BaseModel):
    id: str
    text: str
    from_bot: bool = False
    sent_at: datetime


class Chat(BaseModel):
    """
    Chat session with an append-only message log
    Collection name: "chat"
    """
    session_id: str = Field(..., description="Random UUID, the lookup key for the session")
    owner_id: str
    role: Role
    messages: List[Message] = Field(default_factory=list)


class ChatCreate(BaseModel):
    role: Optional[Role] = Field(None, description="Defaults to the caller's role")


class MessageCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)
    from_bot: bool = False


class ReplyRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)
