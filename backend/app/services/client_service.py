"""
StitchCraft Backend — Client Service
=====================================

What:  Tenant-scoped creation and lookup of client records.
Why:   Every measurement operation starts by resolving a client inside the
       caller's organization; keeping that lookup in one place means no
       route can forget the organization filter.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.context import RequestContext
from app.exceptions import DatabaseError, NotFoundError, StitchCraftError
from app.models.client import Client, CustomerProfile
from app.schemas.client import ClientCreate, ClientResponse

logger = logging.getLogger(__name__)


class ClientService:
    """
    Business logic for client records.

    Responsibilities:
        - create_client(): new client in the caller's organization
        - get_client(): response model for one client
        - find_client() / load_client(): ORM lookup for other services
    """

    async def find_client(
        self, db: AsyncSession, ctx: RequestContext, client_id: UUID
    ) -> Optional[Client]:
        """Client with this ID in the caller's organization, or None."""
        result = await db.execute(
            select(Client).where(
                Client.id == client_id,
                Client.organization_id == ctx.organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def load_client(
        self, db: AsyncSession, ctx: RequestContext, client_id: UUID
    ) -> Client:
        """
        Like find_client() but raises NotFoundError.

        Clients of other organizations are indistinguishable from missing ones.
        """
        try:
            client = await self.find_client(db, ctx, client_id)
        except Exception as e:
            logger.error("Database error loading client %s: %s", client_id, str(e))
            raise DatabaseError(
                message="Could not load the client. Please try again.",
                context={"client_id": str(client_id)},
            )
        if client is None:
            raise NotFoundError(resource="client", resource_id=str(client_id))
        return client

    async def create_client(
        self, db: AsyncSession, ctx: RequestContext, data: ClientCreate
    ) -> ClientResponse:
        try:
            if data.profile_id is not None:
                profile = await db.get(CustomerProfile, data.profile_id)
                if profile is None:
                    raise NotFoundError(resource="profile", resource_id=str(data.profile_id))

            client = Client(
                organization_id=ctx.organization_id,
                name=data.name,
                phone=data.phone,
                profile_id=data.profile_id,
            )
            db.add(client)
            await db.flush()
            logger.info(
                "Client %s created in organization %s", client.id, ctx.organization_id
            )
            return ClientResponse.model_validate(client)

        except StitchCraftError:
            raise
        except Exception as e:
            logger.error("Database error creating client: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not create the client. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def get_client(
        self, db: AsyncSession, ctx: RequestContext, client_id: UUID
    ) -> ClientResponse:
        client = await self.load_client(db, ctx, client_id)
        return ClientResponse.model_validate(client)


client_service = ClientService()
