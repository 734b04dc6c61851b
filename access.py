"""
Access control.

A single table maps every operation to the rule that guards it. Rules are
pure functions of the principal and the target resource; nothing here
touches the database.
"""

from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional, Tuple

from errors import AuthenticationFailed, AuthorizationDenied
from schemas import Principal

ADMIN = "admin"
SELLER = "seller"
CUSTOMER = "customer"
ROLES = (ADMIN, SELLER, CUSTOMER)

UNAUTHENTICATED = "unauthenticated"
FORBIDDEN = "forbidden"


class Decision(NamedTuple):
    allowed: bool
    kind: Optional[str] = None
    reason: Optional[str] = None

    def __bool__(self):
        return self.allowed


ALLOW = Decision(True)


def owner_of(resource: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Listings and chats carry owner_id; identity records are owned by their own id."""
    if resource is None:
        return None
    for key in ("owner_id", "id", "_id"):
        if resource.get(key) is not None:
            return str(resource[key])
    return None


def public(principal, resource):
    return ALLOW


def authenticated(principal, resource):
    return ALLOW


def self_or_admin(principal: Principal, resource) -> Decision:
    if principal.role == ADMIN or principal.id == owner_of(resource):
        return ALLOW
    return Decision(False, FORBIDDEN)


def listing_owner_or_admin(principal: Principal, resource) -> Decision:
    if principal.role == ADMIN:
        return ALLOW
    if principal.role == SELLER and principal.id == owner_of(resource):
        return ALLOW
    return Decision(False, FORBIDDEN)


def role_gate(*roles: str) -> Callable[[Principal, Any], Decision]:
    def rule(principal: Principal, resource) -> Decision:
        if principal.role in roles:
            return ALLOW
        return Decision(
            False, FORBIDDEN,
            f"Access denied: Role '{principal.role}' is not authorized to access this resource",
        )
    rule.__name__ = f"role_gate({', '.join(roles)})"
    return rule


admin_only = role_gate(ADMIN)

# operation -> (rule, message used when the rule denies without its own reason)
RULES: Dict[str, Tuple[Callable[[Principal, Any], Decision], str]] = {
    "principal:login": (public, ""),
    "principal:read_self": (authenticated, ""),
    "principal:change_password": (self_or_admin, "Not authorized to update this user"),
    "principal:create": (admin_only, ""),
    "principal:update": (admin_only, ""),
    "principal:delete": (admin_only, ""),

    "seller:register": (public, ""),
    "seller:read": (self_or_admin, "Not authorized to view this seller"),
    "seller:update": (self_or_admin, "Not authorized to update this seller"),
    "seller:list": (admin_only, ""),
    "seller:delete": (admin_only, ""),
    "seller:set_status": (admin_only, ""),

    "customer:register": (public, ""),
    "customer:read": (self_or_admin, "Not authorized to view this customer"),
    "customer:update": (self_or_admin, "Not authorized to update this customer"),
    "customer:list": (admin_only, ""),
    "customer:delete": (admin_only, ""),

    "listing:browse": (public, ""),
    "listing:read": (public, ""),
    "listing:create": (role_gate(SELLER, ADMIN), ""),
    "listing:update": (listing_owner_or_admin, "Not authorized to update this property"),
    "listing:set_availability": (listing_owner_or_admin, "Not authorized to update this property"),
    "listing:delete": (listing_owner_or_admin, "Not authorized to delete this property"),

    "conversation:create": (authenticated, ""),
    "conversation:list": (self_or_admin, "Not authorized to access these chat sessions"),
    "conversation:read": (self_or_admin, "Not authorized to access this chat session"),
    "conversation:append": (self_or_admin, "Not authorized to access this chat session"),
    "conversation:delete": (self_or_admin, "Not authorized to delete this chat session"),
}


def can_access(principal: Optional[Principal], operation: str, resource: Optional[Mapping[str, Any]] = None) -> Decision:
    rule, message = RULES[operation]
    if rule is public:
        return ALLOW
    if principal is None:
        return Decision(False, UNAUTHENTICATED, "Access denied. No token provided.")
    decision = rule(principal, resource)
    if not decision.allowed and decision.reason is None:
        return decision._replace(reason=message or "Forbidden")
    return decision


def authorize(principal: Optional[Principal], operation: str, resource: Optional[Mapping[str, Any]] = None) -> Principal:
    """Raise the matching error kind unless the operation is allowed; return the principal."""
    decision = can_access(principal, operation, resource)
    if decision.allowed:
        return principal
    if decision.kind == UNAUTHENTICATED:
        raise AuthenticationFailed(decision.reason)
    raise AuthorizationDenied(decision.reason)
