from dataclasses import dataclass

from app.core.exceptions import AuthorizationError


@dataclass(frozen=True)
class Actor:
    """Identity performing an administrative ledger action."""

    id: str
    is_platform_admin: bool = False


def require_platform_admin(actor: Actor) -> None:
    """Raise AuthorizationError unless the actor holds platform-admin privilege."""
    if actor is None or not actor.is_platform_admin:
        raise AuthorizationError("Platform admin privilege required")
