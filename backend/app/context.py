"""
StitchCraft Backend — Request Authorization Context
====================================================

What:  The organization (tenant) and user a request acts on behalf of.
Why:   Every tenant-scoped query filters on organization_id. Services receive
       the context as an explicit argument instead of reading ambient state,
       so a service call can never run without knowing its tenant.
How:   `get_request_context` is a FastAPI dependency that reads the
       X-Organization-ID / X-User-ID headers set by the authenticating proxy.
       Authentication itself is handled upstream of this service.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, Request

from app.exceptions import ValidationError


@dataclass(frozen=True)
class RequestContext:
    organization_id: uuid.UUID
    user_id: Optional[str] = None
    user_name: Optional[str] = None


async def get_request_context(
    request: Request,
    x_organization_id: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> RequestContext:
    """Build the RequestContext for a tenant-scoped route."""
    if not x_organization_id:
        raise ValidationError(
            message="X-Organization-ID header is required",
            field="X-Organization-ID",
        )
    try:
        organization_id = uuid.UUID(x_organization_id)
    except ValueError:
        raise ValidationError(
            message="X-Organization-ID must be a UUID",
            field="X-Organization-ID",
        )

    context = RequestContext(
        organization_id=organization_id,
        user_id=x_user_id or None,
        user_name=x_user_name or None,
    )
    # Rate limiting and access logs key on the tenant
    request.state.organization_id = str(organization_id)
    return context
