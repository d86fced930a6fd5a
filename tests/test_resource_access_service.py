from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio

from sharpcrm.core.config import Settings
from sharpcrm.crm.service import AccessServices, build_access_services
from sharpcrm.persistence.memory import InMemoryAttributeStore
from sharpcrm.persistence.store import StoreError
from sharpcrm.platform.security.context import Identity, Role
from sharpcrm.platform.security.errors import UnknownResourceError
from sharpcrm.platform.security.policies import InMemoryPolicyBackend, ResourceAction
from sharpcrm.platform.security.service import attribute_equals
from sharpcrm.platform.security.sink import RecordingAccessDecisionSink


SETTINGS = Settings()
USERS = SETTINGS.users_table_name
DEALS = SETTINGS.deals_table_name
CONTACTS = SETTINGS.contacts_table_name
PRODUCTS = SETTINGS.products_table_name


class CountingStore(InMemoryAttributeStore):
    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, str]] = []

    async def get_item(self, table: str, key: str) -> dict[str, Any] | None:
        self.calls.append(("get", table))
        return await super().get_item(table, key)

    async def query(self, table, index_name, key_value, *, filter=None):  # type: ignore[no-untyped-def]
        self.calls.append(("query", table))
        return await super().query(table, index_name, key_value, filter=filter)

    async def scan(self, table, *, filter=None):  # type: ignore[no-untyped-def]
        self.calls.append(("scan", table))
        return await super().scan(table, filter=filter)


def _identity(user_id: str, role: Role | str, tenant_id: str = "T1") -> Identity:
    return Identity(user_id=user_id, tenant_id=tenant_id, role=role, email=f"{user_id}@example.com")


def _deal(deal_id: str, owner: str, tenant_id: str = "T1", **extra: Any) -> dict[str, Any]:
    item = {"id": deal_id, "tenantId": tenant_id, "dealOwner": owner, "dealName": f"Deal {deal_id}", "stage": "Prospecting"}
    item.update(extra)
    return item


@pytest.fixture()
def sink() -> RecordingAccessDecisionSink:
    return RecordingAccessDecisionSink()


@pytest_asyncio.fixture
async def store() -> CountingStore:
    return CountingStore()


@pytest_asyncio.fixture
async def services(store: CountingStore, sink: RecordingAccessDecisionSink) -> AccessServices:
    services = build_access_services(store, SETTINGS, sink=sink, policy=InMemoryPolicyBackend(default_allow=False))
    for user in [
        {"userId": "a1", "role": "ADMIN", "tenantId": "T1", "reportingTo": None},
        {"userId": "m1", "role": "SALES_MANAGER", "tenantId": "T1", "reportingTo": None},
        {"userId": "r1", "role": "SALES_REP", "tenantId": "T1", "reportingTo": "m1"},
        {"userId": "r2", "role": "SALES_REP", "tenantId": "T1", "reportingTo": None},
        {"userId": "r3", "role": "SALES_REP", "tenantId": "T1", "reportingTo": "r1"},
        {"userId": "x1", "role": "ADMIN", "tenantId": "T2", "reportingTo": None},
    ]:
        await store.put_item(USERS, user)

    for deal in [
        _deal("D1", "r1", amount=100, leadSource="Web", description="Renewal for ACME"),
        _deal("D2", "r2", amount=250.5, leadSource="Referral"),
        _deal("D3", "m1", amount=50, stage="Closed Won"),
        _deal("D4", "r3"),
        _deal("D5", "r1", isDeleted=True),
        _deal("X1", "x1", tenant_id="T2"),
    ]:
        await store.put_item(DEALS, deal)
    store.calls.clear()
    return services


def _ids(records: list[dict[str, Any]]) -> set[str]:
    return {record["id"] for record in records}


@pytest.mark.asyncio
async def test_list_for_user_matches_role_hierarchy(services: AccessServices) -> None:
    deals = services.get("deal")

    assert _ids(await deals.list_for_user(_identity("a1", Role.ADMIN))) == {"D1", "D2", "D3", "D4"}
    assert _ids(await deals.list_for_user(_identity("m1", Role.SALES_MANAGER))) == {"D1", "D3"}
    assert _ids(await deals.list_for_user(_identity("r1", Role.SALES_REP))) == {"D1"}
    assert _ids(await deals.list_for_user(_identity("r2", Role.SALES_REP))) == {"D2"}


@pytest.mark.asyncio
async def test_manager_delegation_is_single_level(services: AccessServices) -> None:
    visible = _ids(await services.get("deal").list_for_user(_identity("m1", Role.SALES_MANAGER)))

    assert "D4" not in visible


@pytest.mark.asyncio
async def test_no_cross_tenant_records_for_any_role(services: AccessServices) -> None:
    deals = services.get("deal")

    for identity in (_identity("a1", Role.ADMIN), _identity("m1", Role.SALES_MANAGER), _identity("r1", Role.SALES_REP)):
        records = await deals.list_for_user(identity, include_deleted=True)
        assert all(record["tenantId"] == "T1" for record in records)

    assert _ids(await deals.list_for_user(_identity("x1", Role.ADMIN, tenant_id="T2"))) == {"X1"}


@pytest.mark.asyncio
async def test_soft_deleted_records_only_with_include_deleted(services: AccessServices) -> None:
    deals = services.get("deal")
    rep = _identity("r1", Role.SALES_REP)

    assert _ids(await deals.list_for_user(rep)) == {"D1"}
    assert _ids(await deals.list_for_user(_identity("r1", Role.SALES_REP), include_deleted=True)) == {"D1", "D5"}


@pytest.mark.asyncio
async def test_unknown_role_sees_nothing(services: AccessServices) -> None:
    assert await services.get("deal").list_for_user(_identity("a1", "INTERN")) == []


@pytest.mark.asyncio
async def test_get_by_id_denial_is_reported_as_not_found(
    services: AccessServices,
    sink: RecordingAccessDecisionSink,
) -> None:
    deals = services.get("deal")

    assert await deals.get_by_id_for_user("D2", _identity("r1", Role.SALES_REP)) is None
    found = await deals.get_by_id_for_user("D2", _identity("a1", Role.ADMIN))
    assert found is not None and found["id"] == "D2"
    assert await deals.get_by_id_for_user("X1", _identity("a1", Role.ADMIN)) is None
    assert await deals.get_by_id_for_user("missing", _identity("a1", Role.ADMIN)) is None

    outcomes = [(event.operation, event.resource_id, event.granted) for event in sink.events]
    assert outcomes == [("get", "D2", False), ("get", "D2", True), ("get", "X1", False), ("get", "missing", False)]
    assert sink.events[0].role == "SALES_REP"
    assert sink.events[0].tenant_id == "T1"


@pytest.mark.asyncio
async def test_get_by_owner_checks_owner_visibility_first(services: AccessServices, store: CountingStore) -> None:
    deals = services.get("deal")
    manager = _identity("m1", Role.SALES_MANAGER)

    assert _ids(await deals.get_by_owner_for_user("r1", manager)) == {"D1"}
    store.calls.clear()
    assert await deals.get_by_owner_for_user("r2", manager) == []
    assert ("query", DEALS) not in store.calls
    assert _ids(await deals.get_by_owner_for_user("x1", _identity("a1", Role.ADMIN))) == set()


@pytest.mark.asyncio
async def test_manager_list_needs_two_round_trips(services: AccessServices, store: CountingStore) -> None:
    deals = services.get("deal")
    manager = _identity("m1", Role.SALES_MANAGER)

    await deals.list_for_user(manager)
    await deals.stats_for_user(manager)
    await deals.get_by_id_for_user("D1", manager)

    assert store.calls == [("query", USERS), ("scan", DEALS), ("scan", DEALS), ("get", DEALS)]


@pytest.mark.asyncio
async def test_indexed_attribute_lookup_shares_one_scope(services: AccessServices, store: CountingStore) -> None:
    deals = services.get("deal")
    manager = _identity("m1", Role.SALES_MANAGER)

    prospecting = await deals.list_by_attribute_for_user("stage", "Prospecting", manager)

    assert _ids(prospecting) == {"D1"}
    assert store.calls == [("query", USERS), ("query", DEALS)]
    assert (await deals.get_one_by_attribute_for_user("stage", "Closed Won", manager))["id"] == "D3"


@pytest.mark.asyncio
async def test_unindexed_attribute_lookup_filters_visible_list(services: AccessServices) -> None:
    deals = services.get("deal")

    assert _ids(await deals.list_by_attribute_for_user("leadSource", "Referral", _identity("a1", Role.ADMIN))) == {"D2"}
    assert await deals.list_by_attribute_for_user("leadSource", "Referral", _identity("r1", Role.SALES_REP)) == []


@pytest.mark.asyncio
async def test_attribute_lookup_from_url_text_matches_numbers_and_booleans(
    services: AccessServices, store: CountingStore
) -> None:
    await store.put_item(DEALS, _deal("D6", "a1", amount=75, priority=True))
    deals = services.get("deal")
    admin = _identity("a1", Role.ADMIN)

    assert _ids(await deals.list_by_attribute_for_user("amount", "100", admin)) == {"D1"}
    assert _ids(await deals.list_by_attribute_for_user("amount", "250.50", admin)) == {"D2"}
    assert _ids(await deals.list_by_attribute_for_user("priority", "true", admin)) == {"D6"}
    assert await deals.list_by_attribute_for_user("amount", "lots", admin) == []
    assert _ids(await deals.list_by_attribute_for_user("amount", "100", _identity("r2", Role.SALES_REP))) == set()


def test_attribute_equals_only_coerces_url_text() -> None:
    assert attribute_equals(100, "100.0")
    assert attribute_equals(False, "False")
    assert not attribute_equals("100", 100)
    assert not attribute_equals(None, "None")
    assert not attribute_equals(1, "true")


@pytest.mark.asyncio
async def test_search_is_case_insensitive_and_scoped(services: AccessServices, store: CountingStore) -> None:
    deals = services.get("deal")

    assert _ids(await deals.search_for_user(_identity("a1", Role.ADMIN), "acme")) == {"D1"}
    assert _ids(await deals.search_for_user(_identity("a1", Role.ADMIN), "DEAL D")) == {"D1", "D2", "D3", "D4"}
    assert await deals.search_for_user(_identity("r2", Role.SALES_REP), "acme") == []

    store.calls.clear()
    assert await deals.search_for_user(_identity("a1", Role.ADMIN), "   ") == []
    assert store.calls == []


@pytest.mark.asyncio
async def test_search_matches_numbers_as_strings(services: AccessServices, store: CountingStore) -> None:
    await store.put_item(
        PRODUCTS,
        {"id": "P1", "tenantId": "T1", "productOwner": "r1", "name": "Widget", "productCode": 4711},
    )

    found = await services.get("product").search_for_user(_identity("r1", Role.SALES_REP), "471")

    assert _ids(found) == {"P1"}


@pytest.mark.asyncio
async def test_stats_are_computed_over_visible_records(services: AccessServices) -> None:
    stats = await services.get("deal").stats_for_user(_identity("m1", Role.SALES_MANAGER))

    assert stats["total"] == 2
    assert stats["byStage"] == {"Prospecting": 1, "Closed Won": 1}
    assert stats["totalValue"] == 150
    assert stats["avgValue"] == 75


@pytest.mark.asyncio
async def test_policy_matrix_hides_directory_resources_from_reps(
    services: AccessServices,
    store: CountingStore,
) -> None:
    dealers_table = SETTINGS.dealers_table_name
    await store.put_item(dealers_table, {"id": "DL1", "tenantId": "T1", "createdBy": "r1", "name": "North"})

    dealers = services.get("dealer")

    assert await dealers.list_for_user(_identity("r1", Role.SALES_REP)) == []
    assert await dealers.get_by_id_for_user("DL1", _identity("r1", Role.SALES_REP)) is None
    assert _ids(await dealers.list_for_user(_identity("a1", Role.ADMIN))) == {"DL1"}


@pytest.mark.asyncio
async def test_write_decisions(services: AccessServices) -> None:
    deals = services.get("deal")

    assert deals.can_create(_identity("r1", Role.SALES_REP))
    assert await deals.get_for_write("D1", _identity("m1", Role.SALES_MANAGER), ResourceAction.EDIT) is not None
    assert await deals.get_for_write("D2", _identity("m1", Role.SALES_MANAGER), ResourceAction.DELETE) is None
    assert await deals.can_hard_delete("D1", _identity("a1", Role.ADMIN))
    assert not await deals.can_hard_delete("D1", _identity("r1", Role.SALES_REP))


@pytest.mark.asyncio
async def test_contacts_use_same_engine(services: AccessServices, store: CountingStore) -> None:
    await store.put_item(CONTACTS, {"id": "C1", "tenantId": "T1", "contactOwner": "r1", "firstName": "Ada"})
    await store.put_item(CONTACTS, {"id": "C2", "tenantId": "T1", "contactOwner": "r2", "firstName": "Bob"})

    contacts = services.get("contact")

    assert _ids(await contacts.list_for_user(_identity("m1", Role.SALES_MANAGER))) == {"C1"}
    assert _ids(await contacts.get_by_owner_for_user("r2", _identity("a1", Role.ADMIN))) == {"C2"}


@pytest.mark.asyncio
async def test_hierarchy_failure_propagates_from_list(services: AccessServices, store: CountingStore) -> None:
    async def broken_query(table, index_name, key_value, *, filter=None):  # type: ignore[no-untyped-def]
        raise StoreError("query", table, "throttled")

    store.query = broken_query  # type: ignore[method-assign]

    with pytest.raises(StoreError):
        await services.get("deal").list_for_user(_identity("m1", Role.SALES_MANAGER))


@pytest.mark.asyncio
async def test_unknown_resource_raises(services: AccessServices) -> None:
    with pytest.raises(UnknownResourceError):
        services.get("invoice")
