"""Caller identity dependencies.

Identity is established upstream and forwarded in request headers whose
names come from the ``identity`` config section. These dependencies run
before any handler body, so authorization precedes every lookup.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from formbuilder.config import get_config
from formbuilder.logic.errors import AuthorizationError
from formbuilder.models.identity import Identity, Role


logger = logging.getLogger(__name__)


def get_identity(request: Request) -> Identity:
    """Resolve the caller; 401 when the id is missing or the role unknown."""
    cfg = get_config().identity
    user_id = (request.headers.get(cfg.user_header) or "").strip()
    role = (request.headers.get(cfg.role_header) or "").strip().lower()
    if not user_id:
        logger.info("identity.reject reason=missing_user path=%s", request.url.path)
        raise AuthorizationError(401, "authentication required")
    if role not in Role.ALL:
        logger.info("identity.reject reason=invalid_role path=%s", request.url.path)
        raise AuthorizationError(401, "authentication required")
    return Identity(user_id=user_id, role=role)


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_admin:
        logger.info("identity.forbidden user_id=%s role=%s", identity.user_id, identity.role)
        raise AuthorizationError(403, "admin role required")
    return identity


__all__ = ["get_identity", "require_admin"]
