import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import configure_logging, load_settings
from errors import AppError, AuthenticationFailed, error_response, success_response
from schemas import (
    AvailabilityUpdate, ChatCreate, CustomerRegistration, CustomerUpdate, LoginRequest, MessageCreate,
    PasswordChange, Principal, PropertyCreate, PropertyFilter, PropertyType, PropertyUpdate, ReplyRequest,
    SellerRegistration, SellerStatus, SellerStatusUpdate, SellerUpdate, UserCreate, UserUpdate,
)
from services import Services

load_dotenv()
logger = logging.getLogger("listings_api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # tests attach their own services before the app starts
    if getattr(app.state, "services", None) is None:
        settings = load_settings()
        configure_logging(settings.log_level)
        app.state.services = Services.from_settings(settings)
    yield


app = FastAPI(title="Real Estate Listings API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("FRONTEND_URL", "*")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

bearer = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


def current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    services: Services = Depends(get_services),
) -> Principal:
    if credentials is None:
        raise AuthenticationFailed("Access denied. No token provided.")
    return services.credentials.resolve(credentials.credentials)


# ---------------------------
# Error handling
# ---------------------------
@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError):
    logger.warning("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
    return error_response(exc.message, exc.errors, exc.status_code)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err["loc"][1:]) or str(err["loc"][0]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return error_response("Validation failed", errors, 400)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response("Internal Server Error", None, 500)


# ---------------------------
# Diagnostics
# ---------------------------
@app.get("/")
def read_root():
    return {"name": "Real Estate Listings API", "version": 1}


@app.get("/health")
def health():
    return {"status": "ok", "message": "Server is running"}


@app.get("/test")
def test_database(services: Services = Depends(get_services)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["database_name"] = services.db.name
        response["collections"] = services.db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ---------------------------
# Users
# ---------------------------
@app.post("/api/users/login")
def login(body: LoginRequest, services: Services = Depends(get_services)):
    return success_response("Login successful", services.credentials.authenticate(body.email, body.password))


@app.get("/api/users/me")
def get_current_user(principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    return success_response("User profile retrieved successfully", services.credentials.me(principal))


@app.put("/api/users/{user_id}/password")
def update_password(user_id: str, body: PasswordChange,
                    principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    services.credentials.change_password(principal, user_id, body.current_password, body.new_password)
    return success_response("Password updated successfully")


@app.post("/api/users")
def create_user(body: UserCreate, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    return success_response("User created successfully", services.credentials.create_principal(principal, body), 201)


@app.put("/api/users/{user_id}")
def update_user(user_id: str, body: UserUpdate,
                principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    user = services.registration.update_principal(principal, user_id, body.model_dump(exclude_unset=True))
    return success_response("User updated successfully", user)


@app.delete("/api/users/{user_id}")
def delete_user(user_id: str, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    services.registration.delete_principal(principal, user_id)
    return success_response("User deleted successfully")


# ---------------------------
# Sellers
# ---------------------------
@app.post("/api/sellers")
def register_seller(body: SellerRegistration, services: Services = Depends(get_services)):
    seller = services.registration.register_profile("seller", body)
    return success_response("Seller registered successfully. Awaiting approval.", seller, 201)


@app.get("/api/sellers")
def list_sellers(status: Optional[SellerStatus] = Query(None),
                 principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    return success_response("Sellers retrieved successfully", services.sellers.list(principal, status=status))


@app.get("/api/sellers/{seller_id}")
def get_seller(seller_id: str, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    return success_response("Seller retrieved successfully", services.sellers.get(principal, seller_id))


@app.put("/api/sellers/{seller_id}")
def update_seller(seller_id: str, body: SellerUpdate,
                  principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    seller = services.sellers.update(principal, seller_id, body.model_dump(exclude_unset=True))
    return success_response("Seller updated successfully", seller)


@app.patch("/api/sellers/{seller_id}/status")
def update_seller_status(seller_id: str, body: SellerStatusUpdate,
                         principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    result = services.sellers.set_status(principal, seller_id, body.status)
    return success_response(f"Seller status updated to {body.status}", result)


@app.delete("/api/sellers/{seller_id}")
def delete_seller(seller_id: str, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    services.registration.unregister(principal, "seller", seller_id)
    return success_response("Seller deleted successfully")


# ---------------------------
# Customers
# ---------------------------
@app.post("/api/customers")
def register_customer(body: CustomerRegistration, services: Services = Depends(get_services)):
    customer = services.registration.register_profile("customer", body)
    return success_response("Customer registered successfully", customer, 201)


@app.get("/api/customers")
def list_customers(principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    return success_response("Customers retrieved successfully", services.customers.list(principal))


@app.get("/api/customers/{customer_id}")
def get_customer(customer_id: str, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    return success_response("Customer retrieved successfully", services.customers.get(principal, customer_id))


@app.put("/api/customers/{customer_id}")
def update_customer(customer_id: str, body: CustomerUpdate,
                    principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    customer = services.customers.update(principal, customer_id, body.model_dump(exclude_unset=True))
    return success_response("Customer updated successfully", customer)


@app.delete("/api/customers/{customer_id}")
def delete_customer(customer_id: str, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    services.registration.unregister(principal, "customer", customer_id)
    return success_response("Customer deleted successfully")


# ---------------------------
# Properties
# ---------------------------
@app.get("/api/properties")
def list_properties(
    type: Optional[PropertyType] = Query(None),
    city: Optional[str] = Query(None, description="Case-insensitive match on address.city"),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    for_sale: Optional[bool] = Query(None),
    owner_id: Optional[str] = Query(None),
    min_beds: Optional[int] = Query(None, ge=0),
    min_baths: Optional[int] = Query(None, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=500),
    services: Services = Depends(get_services),
):
    filters = PropertyFilter(
        type=type, city=city, min_price=min_price, max_price=max_price, for_sale=for_sale,
        owner_id=owner_id, min_beds=min_beds, min_baths=min_baths,
    )
    return success_response("Properties retrieved successfully", services.listings.list(filters, limit))


@app.get("/api/properties/seller/{seller_id}")
def list_seller_properties(seller_id: str, services: Services = Depends(get_services)):
    return success_response("Seller properties retrieved successfully", services.listings.list_by_owner(seller_id))


@app.get("/api/properties/{property_id}")
def get_property(property_id: str, services: Services = Depends(get_services)):
    return success_response("Property retrieved successfully", services.listings.get(property_id))


@app.post("/api/properties")
def create_property(body: PropertyCreate, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    return success_response("Property created successfully", services.listings.create(principal, body), 201)


@app.put("/api/properties/{property_id}")
def update_property(property_id: str, body: PropertyUpdate,
                    principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    listing = services.listings.update(principal, property_id, body.model_dump(exclude_unset=True))
    return success_response("Property updated successfully", listing)


@app.patch("/api/properties/{property_id}/availability")
def update_property_availability(property_id: str, body: AvailabilityUpdate,
                                 principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    result = services.listings.set_availability(principal, property_id, body.for_sale)
    return success_response(f"Property marked as {'for sale' if body.for_sale else 'not for sale'}", result)


@app.delete("/api/properties/{property_id}")
def delete_property(property_id: str, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    services.listings.delete(principal, property_id)
    return success_response("Property deleted successfully")


# ---------------------------
# Chats
# ---------------------------
@app.post("/api/chats")
def create_chat(body: ChatCreate, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    chat = services.conversations.create_session(principal, body.role)
    return success_response("Chat session created successfully", chat, 201)


@app.get("/api/chats/user/{user_id}")
def list_user_chats(user_id: str, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    return success_response("Chat sessions retrieved successfully", services.conversations.list_by_owner(principal, user_id))


@app.get("/api/chats/{session_id}")
def get_chat(session_id: str, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    return success_response("Chat session retrieved successfully", services.conversations.get_session(principal, session_id))


@app.patch("/api/chats/{session_id}")
def add_message(session_id: str, body: MessageCreate,
                principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    message = services.conversations.append_message(principal, session_id, body.text, body.from_bot)
    return success_response("Message added successfully", {"session_id": session_id, "message": message})


@app.post("/api/chats/{session_id}/reply")
def reply(session_id: str, body: ReplyRequest,
          principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    return success_response("Reply generated successfully", services.assistant.reply(principal, session_id, body.text))


@app.delete("/api/chats/{session_id}")
def delete_chat(session_id: str, principal: Principal = Depends(current_principal), services: Services = Depends(get_services)):
    services.conversations.delete_session(principal, session_id)
    return success_response("Chat session deleted successfully")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
