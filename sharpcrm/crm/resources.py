from __future__ import annotations

from functools import partial

from sharpcrm.core.config import Settings
from sharpcrm.crm import stats
from sharpcrm.persistence.store import TableSchema
from sharpcrm.platform.security.context import TENANT_ATTRIBUTE
from sharpcrm.platform.security.hierarchy import REPORTING_TO_INDEX, USER_ID_ATTRIBUTE
from sharpcrm.platform.security.service import ResourceDefinition


TENANT_INDEX = "TenantIndex"

DEAL = "deal"
PRODUCT = "product"
TASK = "task"
CONTACT = "contact"
DEALER = "dealer"
SUBSIDIARY = "subsidiary"
LEAD = "lead"
QUOTE = "quote"


def resource_definitions(settings: Settings) -> dict[str, ResourceDefinition]:
    days = settings.stats_recent_days
    definitions = [
        ResourceDefinition(
            name=DEAL,
            table=settings.deals_table_name,
            owner_attribute="dealOwner",
            tenant_index=None,
            owner_index="DealOwnerIndex",
            lookup_indexes={"stage": "StageIndex"},
            search_fields=("dealName", "description", "leadSource", "email"),
            stats=partial(stats.deal_stats, recent_days=days),
        ),
        ResourceDefinition(
            name=PRODUCT,
            table=settings.products_table_name,
            owner_attribute="productOwner",
            tenant_index=TENANT_INDEX,
            lookup_indexes={"productCode": "ProductCodeIndex"},
            search_fields=("name", "productCode", "description", "notes", "category", "sku"),
            stats=partial(stats.product_stats, recent_days=days),
        ),
        ResourceDefinition(
            name=TASK,
            table=settings.tasks_table_name,
            owner_attribute="assignee",
            tenant_index=None,
            search_fields=("title", "description", "status", "priority"),
            stats=partial(stats.task_stats, recent_days=days),
        ),
        ResourceDefinition(
            name=CONTACT,
            table=settings.contacts_table_name,
            owner_attribute="contactOwner",
            tenant_index=TENANT_INDEX,
            owner_index="ContactOwnerIndex",
            lookup_indexes={"email": "EmailIndex"},
            search_fields=("firstName", "lastName", "companyName", "email"),
            stats=partial(stats.contact_stats, recent_days=days),
        ),
        ResourceDefinition(
            name=DEALER,
            table=settings.dealers_table_name,
            owner_attribute="createdBy",
            tenant_index=None,
            search_fields=("name", "email", "phone", "company", "location"),
            stats=partial(stats.directory_stats, recent_days=days),
        ),
        ResourceDefinition(
            name=SUBSIDIARY,
            table=settings.subsidiaries_table_name,
            owner_attribute="createdBy",
            tenant_index=None,
            search_fields=("name", "email", "contact", "address"),
            stats=partial(stats.directory_stats, recent_days=days),
        ),
        ResourceDefinition(
            name=LEAD,
            table=settings.leads_table_name,
            owner_attribute="leadOwner",
            tenant_index=TENANT_INDEX,
            owner_index="LeadOwnerIndex",
            search_fields=("firstName", "lastName", "company", "email"),
            stats=partial(stats.lead_stats, recent_days=days),
        ),
        ResourceDefinition(
            name=QUOTE,
            table=settings.quotes_table_name,
            owner_attribute="quoteOwner",
            tenant_index=None,
            search_fields=("quoteName", "quoteNumber", "description", "notes", "terms"),
            stats=partial(stats.quote_stats, recent_days=days),
        ),
    ]
    return {definition.name: definition for definition in definitions}


def table_schemas(settings: Settings) -> list[TableSchema]:
    """Key and index layout for every table the engine reads, users included."""

    schemas = [
        TableSchema(
            name=settings.users_table_name,
            key_attribute=USER_ID_ATTRIBUTE,
            indexes={REPORTING_TO_INDEX: "reportingTo", TENANT_INDEX: TENANT_ATTRIBUTE},
        )
    ]
    for definition in resource_definitions(settings).values():
        indexes = {index_name: attribute for attribute, index_name in definition.lookup_indexes.items()}
        if definition.tenant_index is not None:
            indexes[definition.tenant_index] = TENANT_ATTRIBUTE
        if definition.owner_index is not None:
            indexes[definition.owner_index] = definition.owner_attribute
        schemas.append(TableSchema(name=definition.table, indexes=indexes))
    return schemas
