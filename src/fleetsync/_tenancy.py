"""Caller tenant resolution shared by the services."""

from __future__ import annotations

import logging

from fleetsync._timeout import Operation, TimeoutGuard
from fleetsync.exceptions import AuthenticationError
from fleetsync.stores.base import IdentityProvider

_logger = logging.getLogger(__name__)


async def require_tenant(identity: IdentityProvider, guard: TimeoutGuard) -> str:
    """Return the caller's tenant id or fail closed."""
    tenant_id = await guard.run(
        Operation.QUERY,
        identity.current_tenant_id(),
        "Failed to retrieve company information. Please try again.",
    )
    if not tenant_id:
        _logger.debug("No tenant resolved for caller")
        raise AuthenticationError("Not authenticated. Please log in again.")
    return tenant_id
