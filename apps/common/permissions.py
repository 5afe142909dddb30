from rest_framework.permissions import BasePermission

from apps.accounts.models import UserRole


ROLE_CAPABILITIES = {
    UserRole.ADMIN: {
        "orders.manage",
        "orders.pay",
        "delivery.view",
        "delivery.quote",
        "delivery.manage",
        "delivery.logs.view",
        "promotions.manage",
        "wallet.use",
        "wallet.view.any",
        "payments.initialize",
        "payments.virtual_account",
        "maps.distance",
    },
    UserRole.VENDOR: {
        "delivery.view",
        "delivery.quote",
        "wallet.use",
        "payments.initialize",
        "payments.virtual_account",
        "maps.distance",
    },
    UserRole.CUSTOMER: {
        "orders.pay",
        "delivery.view",
        "delivery.quote",
        "wallet.use",
        "payments.initialize",
        "payments.virtual_account",
        "maps.distance",
    },
}


def resolve_role(user):
    group_names = set(user.groups.values_list("name", flat=True))
    for role in (UserRole.ADMIN, UserRole.VENDOR, UserRole.CUSTOMER):
        if role in group_names:
            return role
    return getattr(user, "role", UserRole.CUSTOMER)


def has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    return capability in ROLE_CAPABILITIES.get(resolve_role(user), set())


class RolePermission(BasePermission):
    """Single guard for every view: the view's ``capability_map`` names what each action needs."""

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        capability_map = getattr(view, "capability_map", {})
        action = getattr(view, "action", None) or request.method.lower()
        required = capability_map.get(action) or capability_map.get(request.method.lower()) or set()
        if not required:
            return True

        user_caps = ROLE_CAPABILITIES.get(resolve_role(request.user), set())
        return all(cap in user_caps for cap in required)
