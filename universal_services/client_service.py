"""
ClientService -- clients and their organizations on the universal tables.

Responsibility:
    The entity pattern specialised to ``entity_type="client"``.  A client's
    type is a dynamic field, free-form attributes are ``client_data``
    metadata, and each organization the client owns is an ``organization``
    entity linked by a ``client_organization`` relationship.

Architecture position:
    Services -- thin layer over EntityService; every write is audited and
    atomic there.

Failure modes:
    - DuplicateEntityCodeError for a reused client or organization code.
    - EntityNotFoundError when the id is not a client of the organization.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from universal_kernel.domain.clock import Clock
from universal_kernel.domain.dtos import EntityInfo, TransactionInfo
from universal_kernel.exceptions import EntityNotFoundError
from universal_kernel.logging_config import get_logger
from universal_kernel.models.transaction import UniversalTransaction
from universal_kernel.services.entity_service import EntityService, MetadataEntry

logger = get_logger("services.client")

CLIENT = "client"
ORGANIZATION = "organization"
CLIENT_ORGANIZATION = "client_organization"
CLIENT_DATA = "client_data"


@dataclass(frozen=True)
class ClientTransactionSummary:
    total_transactions: int
    total_amount: Decimal
    recent_transactions: tuple[TransactionInfo, ...] = ()


@dataclass(frozen=True)
class ClientDetails:
    client: EntityInfo
    organizations: tuple[EntityInfo, ...]
    transactions: ClientTransactionSummary

    @property
    def client_type(self) -> str | None:
        return self.client.get("client_type")


@dataclass(frozen=True)
class ClientAnalytics:
    client_id: UUID
    total_organizations: int
    total_transactions: int
    total_transaction_amount: Decimal
    metadata_count: int
    dynamic_field_count: int
    activity: tuple[TransactionInfo, ...] = ()


def _metadata_entries(metadata: Mapping[str, Any] | None) -> list[MetadataEntry]:
    return [
        MetadataEntry(metadata_type=CLIENT_DATA, metadata_key=key, metadata_value=value)
        for key, value in (metadata or {}).items()
    ]


class ClientService:
    """CRUD, search and analytics for clients."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        entity_service: EntityService | None = None,
    ):
        self.session = session
        self.entities = entity_service or EntityService(session, clock=clock)

    def _client(self, client_id: UUID, organization_id: str) -> EntityInfo:
        info = self.entities.get_entity(client_id, organization_id)
        if info.entity_type != CLIENT:
            raise EntityNotFoundError(str(client_id), organization_id)
        return info

    def create_client(
        self,
        organization_id: str,
        client_name: str,
        client_code: str,
        client_type: str,
        metadata: Mapping[str, Any] | None = None,
        dynamic_fields: Mapping[str, Any] | None = None,
        actor_id: UUID | None = None,
    ) -> EntityInfo:
        fields = {**(dynamic_fields or {}), "client_type": client_type}
        info = self.entities.create_entity(
            organization_id,
            CLIENT,
            client_name,
            client_code,
            dynamic_fields=fields,
            metadata=_metadata_entries(metadata),
            actor_id=actor_id,
        )
        logger.info(
            "client_created",
            extra={"organization_id": organization_id, "client_id": str(info.id)},
        )
        return info

    def get_client(self, client_id: UUID, organization_id: str) -> ClientDetails:
        client = self._client(client_id, organization_id)
        organizations = tuple(self.get_client_organizations(client_id, organization_id))
        return ClientDetails(
            client=client,
            organizations=organizations,
            transactions=self._transaction_summary(
                organization_id, [client.id, *(o.id for o in organizations)]
            ),
        )

    def list_clients(self, organization_id: str, limit: int | None = None) -> list[EntityInfo]:
        return self.entities.list_entities(organization_id, CLIENT, limit=limit)

    def search_clients(self, organization_id: str, query: str) -> list[EntityInfo]:
        return self.entities.search_entities(organization_id, query, entity_type=CLIENT)

    def update_client(
        self,
        client_id: UUID,
        organization_id: str,
        client_name: str | None = None,
        client_type: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        dynamic_fields: Mapping[str, Any] | None = None,
        actor_id: UUID | None = None,
    ) -> EntityInfo:
        """
        Update a client.  Dynamic fields are upserted, so fields not named
        here are kept; metadata keys supersede their active version.
        """
        self._client(client_id, organization_id)
        fields = dict(dynamic_fields or {})
        if client_type is not None:
            fields["client_type"] = client_type
        return self.entities.update_entity(
            client_id,
            entity_name=client_name,
            dynamic_fields=fields or None,
            metadata=_metadata_entries(metadata),
            replace_fields=False,
            organization_id=organization_id,
            actor_id=actor_id,
        )

    def delete_client(
        self,
        client_id: UUID,
        organization_id: str,
        actor_id: UUID | None = None,
    ) -> EntityInfo:
        self._client(client_id, organization_id)
        return self.entities.delete_entity(client_id, organization_id, actor_id=actor_id)

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    def add_organization(
        self,
        client_id: UUID,
        organization_id: str,
        org_name: str,
        org_code: str,
        industry: str | None = None,
        country: str | None = None,
        currency: str | None = None,
        actor_id: UUID | None = None,
    ) -> EntityInfo:
        """Create an organization entity owned by the client."""
        self._client(client_id, organization_id)
        fields = {
            name: value
            for name, value in (
                ("industry", industry),
                ("country", country),
                ("currency", currency),
            )
            if value is not None
        }
        return self.entities.create_linked_entity(
            client_id,
            CLIENT_ORGANIZATION,
            ORGANIZATION,
            org_name,
            org_code,
            dynamic_fields=fields,
            actor_id=actor_id,
        )

    def get_client_organizations(self, client_id: UUID, organization_id: str) -> list[EntityInfo]:
        return [
            org
            for org in self.entities.get_related_entities(
                client_id, CLIENT_ORGANIZATION, organization_id
            )
            if org.is_active
        ]

    # ------------------------------------------------------------------
    # Transactions / analytics
    # ------------------------------------------------------------------

    def _transaction_summary(
        self,
        organization_id: str,
        entity_ids: list[UUID],
        recent_limit: int = 10,
    ) -> ClientTransactionSummary:
        mentions = (
            UniversalTransaction.organization_id == organization_id,
            UniversalTransaction.transaction_data["entity_id"].as_string().in_(
                [str(i) for i in entity_ids]
            ),
        )
        count, total = self.session.execute(
            select(func.count(), func.coalesce(func.sum(UniversalTransaction.total_amount), 0))
            .select_from(UniversalTransaction)
            .where(*mentions)
        ).one()
        recent = self.session.execute(
            select(UniversalTransaction)
            .where(*mentions)
            .order_by(
                UniversalTransaction.created_at.desc(),
                UniversalTransaction.transaction_number.desc(),
            )
            .limit(recent_limit)
        ).scalars()
        return ClientTransactionSummary(
            total_transactions=count,
            total_amount=Decimal(str(total)),
            recent_transactions=tuple(TransactionInfo.from_model(t) for t in recent),
        )

    def get_client_analytics(self, client_id: UUID, organization_id: str) -> ClientAnalytics:
        client = self._client(client_id, organization_id)
        organizations = self.get_client_organizations(client_id, organization_id)
        base = self.entities.get_entity_analytics(client_id, organization_id)
        summary = self._transaction_summary(
            organization_id, [client.id, *(o.id for o in organizations)]
        )
        return ClientAnalytics(
            client_id=client.id,
            total_organizations=len(organizations),
            total_transactions=summary.total_transactions,
            total_transaction_amount=summary.total_amount,
            metadata_count=base.metadata_count,
            dynamic_field_count=base.dynamic_field_count,
            activity=summary.recent_transactions,
        )
