"""
Capability check for every endpoint class.
One dependency factory parameterized by the allowed roles replaces per-role copies of the
credential lookup.
"""

from typing import Optional

from fastapi import Header, Request

from ..core.errors import AuthError, PermissionDenied
from ..core.schema import Identity, Role
from ..core.users import resolve_api_key
from ..util.logging import logger

_ROLE_MESSAGES = {
    frozenset({Role.ADMIN}): "Only administrators can access this endpoint",
    frozenset({Role.APPROVER}): "Only approvers can access this endpoint",
}


def require_roles(*roles: str):
    """Dependency resolving X-API-Key to an Identity whose role is in roles.

    With no roles, any authenticated user passes.
    """
    allowed = frozenset(roles)

    def dependency(request: Request,
                   x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")) -> Identity:
        try:
            identity, _ = resolve_api_key(x_api_key)
        except AuthError:
            logger.log_auth_failure("invalid credential", path=request.url.path)
            raise

        if allowed and identity.role not in allowed:
            logger.log_auth_failure("role not permitted", path=request.url.path,
                                    username=identity.username)
            raise PermissionDenied(_ROLE_MESSAGES.get(
                allowed, f"Requires one of the roles: {', '.join(sorted(allowed))}"))

        return identity

    return dependency


authenticated = require_roles()
admin_only = require_roles(Role.ADMIN)
approver_only = require_roles(Role.APPROVER)
