"""Tests for EntitySelector."""

from uuid import uuid4

import pytest
from sqlalchemy import event, update

from tests.conftest import ORG, OTHER_ORG
from universal_kernel.exceptions import MissingOrganizationError
from universal_kernel.models.dynamic_data import DynamicField
from universal_kernel.selectors.entity_selector import EntitySelector


@pytest.fixture
def selector(session):
    return EntitySelector(session)


@pytest.fixture
def count_queries(session):
    """Counts SELECT statements issued on the session's connection."""
    statements: list[str] = []
    engine = session.get_bind().engine

    def _before(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("SELECT"):
            statements.append(statement)

    event.listen(engine, "before_cursor_execute", _before)
    yield statements
    event.remove(engine, "before_cursor_execute", _before)


class TestLoadMany:

    def test_fixed_query_count(self, session, selector, make_entity, count_queries):
        ids = [
            make_entity("product", f"Item {i}", f"P-{i}", dynamic_fields={"price": i})
            .id
            for i in range(5)
        ]
        session.expire_all()
        count_queries.clear()

        loaded = selector.load_many(ids, ORG)

        assert len(loaded) == 5
        assert len(count_queries) == 4

    def test_preserves_request_order_and_skips_missing(self, selector, make_entity):
        first = make_entity(entity_code="P-1")
        second = make_entity(entity_code="P-2")

        loaded = selector.load_many([second.id, uuid4(), first.id, second.id])

        assert list(loaded) == [second.id, first.id]

    def test_org_scoping(self, selector, make_entity):
        foreign = make_entity(organization_id=OTHER_ORG)
        assert selector.load_many([foreign.id], ORG) == {}
        assert foreign.id in selector.load_many([foreign.id], OTHER_ORG)

    def test_empty_input(self, selector, count_queries):
        assert selector.load_many([]) == {}
        assert count_queries == []

    def test_folds_fields_metadata_and_relationships(self, selector, entity_service, make_entity):
        parent = make_entity(
            "customer",
            "Acme",
            "C-1",
            dynamic_fields={"email": "a@acme.test"},
            metadata=[{"metadata_type": "profile", "metadata_key": "tier", "metadata_value": 1}],
        )
        child = make_entity("contact", "Jo", "CT-1")
        entity_service.create_relationship(parent.id, child.id, "customer_has_contact")

        info = selector.get(parent.id, ORG)

        assert info.dynamic_fields == {"email": "a@acme.test"}
        assert info.field_types == {"email": "text"}
        assert info.metadata == {"profile": {"tier": 1}}
        assert info.related_ids("customer_has_contact") == (child.id,)

    def test_undecodable_value_falls_back_to_text(self, session, selector, make_entity, captured_logs):
        entity = make_entity(dynamic_fields={"price": 3})
        session.execute(
            update(DynamicField)
            .where(DynamicField.entity_id == entity.id)
            .values(field_value="three")
        )
        session.expire_all()

        info = selector.get(entity.id)

        assert info.get("price") == "three"
        assert info.field_types["price"] == "text"
        record = next(r for r in captured_logs() if r["message"] == "dynamic_field_decode_failed")
        assert record["field_name"] == "price"


class TestQueries:

    def test_list_by_type_active_only(self, selector, entity_service, make_entity):
        kept = make_entity(entity_code="P-1")
        gone = make_entity(entity_code="P-2")
        entity_service.delete_entity(gone.id, ORG)

        assert [e.id for e in selector.list_by_type(ORG, "product")] == [kept.id]
        everything = selector.list_by_type(ORG, "product", active_only=False)
        assert {e.id for e in everything} == {kept.id, gone.id}

    def test_search_escapes_wildcards(self, selector, make_entity):
        make_entity(entity_name="100% Arabica", entity_code="P-1")
        make_entity(entity_name="1000 Beans", entity_code="P-2")

        assert [e.entity_name for e in selector.search(ORG, "100%")] == ["100% Arabica"]

    def test_search_matches_code(self, selector, make_entity):
        target = make_entity(entity_name="Espresso", entity_code="ESP-01")
        assert [e.id for e in selector.search(ORG, "esp-0")] == [target.id]

    def test_find_by_code(self, selector, entity_service, make_entity):
        entity = make_entity(entity_code="P-9")

        assert selector.find_by_code(ORG, "product", "P-9").id == entity.id
        assert selector.find_by_code(ORG, "customer", "P-9") is None
        entity_service.delete_entity(entity.id, ORG)
        assert selector.find_by_code(ORG, "product", "P-9") is None

    def test_related_scoped_to_type(self, selector, entity_service, make_entity):
        source = make_entity(entity_code="P-1")
        a = make_entity("ingredient", "Milk", "I-1")
        b = make_entity("ingredient", "Beans", "I-2")
        entity_service.create_relationship(source.id, a.id, "product_has_ingredient")
        entity_service.create_relationship(source.id, b.id, "product_has_supplier")

        related = selector.related(source.id, "product_has_ingredient", ORG)
        assert [e.id for e in related] == [a.id]

    @pytest.mark.parametrize("org", [None, "", "  "])
    def test_requires_organization(self, selector, org):
        with pytest.raises(MissingOrganizationError):
            selector.list_by_type(org, "product")
