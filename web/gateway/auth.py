"""Actor identity supplied by the upstream auth service.

Session issuance lives elsewhere; by the time a request reaches this service
the auth proxy has resolved the caller and forwarded ``X-Actor-Id`` and
``X-Actor-Role``. The order lifecycle trusts whatever identity it is given.
"""

from dataclasses import dataclass

from rest_framework.authentication import BaseAuthentication
from rest_framework.permissions import BasePermission

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as seen by DRF (``request.user``)."""

    id: str
    role: str = "customer"

    @property
    def pk(self) -> str:
        return self.id

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


class HeaderActorAuthentication(BaseAuthentication):
    """Build an ``Actor`` from the trusted upstream headers, if present."""

    def authenticate(self, request):
        actor_id = request.META.get("HTTP_X_ACTOR_ID")
        if not actor_id:
            return None
        role = (request.META.get("HTTP_X_ACTOR_ROLE") or "customer").strip().lower()
        return Actor(id=actor_id.strip(), role=role), None

    def authenticate_header(self, request):
        return "X-Actor-Id"


class IsAdminActor(BasePermission):
    def has_permission(self, request, view):
        actor = request.user
        return bool(actor is not None and getattr(actor, "is_admin", False))


def actor_id(request) -> str | None:
    """Return the caller's id, or None for guest checkouts and webhooks."""
    actor = getattr(request, "user", None)
    return getattr(actor, "id", None) if actor is not None else None
