from app.cuadraturas.core.context import Actor
from app.cuadraturas.core.error_catalog import AppError, ErrorCatalog

ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"
RECONCILIATION_ROLES = frozenset({ROLE_ADMIN, ROLE_SUPERADMIN})


def normalize_role(role: str | None) -> str:
    return (role or "").strip().lower()


def is_superadmin(role: str | None) -> bool:
    return normalize_role(role) == ROLE_SUPERADMIN


def is_admin(role: str | None) -> bool:
    return normalize_role(role) == ROLE_ADMIN


def enforce_role(actor: Actor, allowed: frozenset[str] | set[str], *, message: str | None = None) -> None:
    if normalize_role(actor.role) not in allowed:
        details = {"role": actor.role, "allowed": sorted(allowed)}
        if message:
            details["message"] = message
        raise AppError(ErrorCatalog.PERMISSION_DENIED, details=details)
