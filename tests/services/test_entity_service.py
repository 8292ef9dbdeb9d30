"""
Tests for EntityService.

Covers:
- Create / read round trip with typed dynamic fields
- Atomicity of multi-table writes (savepoint rollback)
- Replace and upsert update modes, field versioning
- Soft delete and code reuse
- Metadata versions, relationships, linked creation
- Analytics and best-effort bulk creation
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from tests.conftest import ORG, OTHER_ORG
from universal_kernel.exceptions import (
    CrossTenantRelationshipError,
    DuplicateEntityCodeError,
    EntityInactiveError,
    EntityNotFoundError,
    InvalidEntityDataError,
    InvalidFieldValueError,
    MissingOrganizationError,
    RelationshipNotFoundError,
    SelfRelationshipError,
)
from universal_kernel.models.dynamic_data import DynamicField
from universal_kernel.models.entity import Entity
from universal_kernel.services.entity_service import (
    MetadataEntry,
    normalize_fields,
)


def _count(session, model, *criteria):
    return session.execute(select(func.count()).select_from(model).where(*criteria)).scalar_one()


class TestNormalizeFields:

    def test_mapping_form(self):
        fields = normalize_fields({"price": Decimal("4.50"), "vegan": True})
        assert fields["price"].field_type.value == "decimal"
        assert fields["vegan"].encoded == "true"

    def test_list_form_with_explicit_type(self):
        fields = normalize_fields([
            {"field_name": "stock", "field_value": "12", "field_type": "number"},
            {"field_name": "note", "field_value": "fragile"},
        ])
        assert fields["stock"].value == 12
        assert fields["note"].field_type.value == "text"

    def test_malformed_items_rejected(self):
        with pytest.raises(InvalidEntityDataError):
            normalize_fields([{"field_value": "x"}])
        with pytest.raises(InvalidEntityDataError):
            normalize_fields({"  ": "x"})

    def test_bad_typed_value_rejected(self):
        with pytest.raises(InvalidFieldValueError):
            normalize_fields([{"field_name": "stock", "field_value": "many", "field_type": "number"}])


class TestCreateEntity:

    def test_round_trip_with_typed_fields(self, entity_service, test_actor_id):
        info = entity_service.create_entity(
            ORG,
            "product",
            "Latte",
            "PRD-001",
            dynamic_fields={"price": Decimal("4.50"), "vegan": True, "sizes": ["S", "M"]},
            metadata=[MetadataEntry("pricing", "tier", "gold")],
            actor_id=test_actor_id,
        )

        loaded = entity_service.get_entity(info.id, ORG)
        assert loaded.entity_code == "PRD-001"
        assert loaded.is_active
        assert loaded.get("price") == Decimal("4.50")
        assert loaded.get("vegan") is True
        assert loaded.get("sizes") == ["S", "M"]
        assert loaded.field_types["price"] == "decimal"
        assert loaded.metadata == {"pricing": {"tier": "gold"}}

    def test_json_field_holding_plain_string(self, entity_service):
        info = entity_service.create_entity(
            ORG,
            "product",
            "Latte",
            "PRD-001",
            dynamic_fields=[
                {"field_name": "tags", "field_value": "hello", "field_type": "json"},
                {"field_name": "notes", "field_value": "", "field_type": "json"},
            ],
        )

        loaded = entity_service.get_entity(info.id, ORG)
        assert loaded.get("tags") == "hello"
        assert loaded.get("notes") == ""
        assert loaded.field_types["tags"] == "json"

    def test_records_audit_transaction(self, entity_service, transaction_service):
        info = entity_service.create_entity(
            ORG, "product", "Latte", "PRD-001", dynamic_fields={"price": "4.50"}
        )

        audits = transaction_service.list_transactions(ORG, "entity_create")
        assert len(audits) == 1
        assert audits[0].transaction_number == "AUD-00000001"
        assert audits[0].transaction_data["entity_id"] == str(info.id)
        assert audits[0].transaction_data["changes"]["fields"] == ["price"]

    def test_audit_numbers_increase(self, entity_service, transaction_service):
        entity_service.create_entity(ORG, "product", "A", "A-1")
        entity_service.create_entity(ORG, "product", "B", "B-1")
        numbers = sorted(t.transaction_number for t in transaction_service.list_transactions(ORG))
        assert numbers == ["AUD-00000001", "AUD-00000002"]

    def test_duplicate_code_raises_and_leaves_nothing(self, session, entity_service, captured_logs):
        entity_service.create_entity(ORG, "product", "Latte", "PRD-001")

        with pytest.raises(DuplicateEntityCodeError) as exc_info:
            entity_service.create_entity(
                ORG, "product", "Mocha", "PRD-001", dynamic_fields={"price": "5"}
            )

        assert exc_info.value.entity_code == "PRD-001"
        assert _count(session, Entity, Entity.entity_code == "PRD-001") == 1
        assert _count(session, DynamicField, DynamicField.field_name == "price") == 0
        assert any(r["message"] == "entity_code_conflict" for r in captured_logs())

    def test_same_code_other_org(self, entity_service):
        entity_service.create_entity(ORG, "product", "Latte", "PRD-001")
        other = entity_service.create_entity(OTHER_ORG, "product", "Latte", "PRD-001")
        assert other.organization_id == OTHER_ORG

    def test_failure_mid_write_rolls_back_every_table(self, session, entity_service, monkeypatch):
        def _fail(*args, **kwargs):
            raise SQLAlchemyError("audit insert failed")

        monkeypatch.setattr(entity_service, "_record_audit", _fail)

        with pytest.raises(SQLAlchemyError):
            entity_service.create_entity(
                ORG,
                "product",
                "Latte",
                "PRD-ROLLBACK",
                dynamic_fields={"price": "4"},
                metadata=[MetadataEntry("pricing", "tier", "gold")],
            )

        assert _count(session, Entity, Entity.entity_code == "PRD-ROLLBACK") == 0
        assert _count(session, DynamicField, DynamicField.field_name == "price") == 0

    @pytest.mark.parametrize(
        "args",
        [
            (ORG, "product", "  ", "X"),
            (ORG, "product", "Latte", ""),
            (ORG, "", "Latte", "X"),
        ],
    )
    def test_identity_required(self, entity_service, args):
        with pytest.raises(InvalidEntityDataError):
            entity_service.create_entity(*args)

    def test_organization_required(self, entity_service):
        with pytest.raises(MissingOrganizationError):
            entity_service.create_entity("", "product", "Latte", "X")

    def test_malformed_metadata_rejected(self, entity_service):
        with pytest.raises(InvalidEntityDataError):
            entity_service.create_entity(
                ORG, "product", "Latte", "X", metadata=[{"metadata_key": "tier"}]
            )


class TestReadEntities:

    def test_get_other_org_not_found(self, entity_service, make_entity):
        info = make_entity()
        with pytest.raises(EntityNotFoundError):
            entity_service.get_entity(info.id, OTHER_ORG)

    def test_get_unknown(self, entity_service):
        with pytest.raises(EntityNotFoundError):
            entity_service.get_entity(uuid4())

    def test_list_excludes_deleted_and_other_types(self, entity_service, make_entity):
        keep = make_entity("product", "Latte", "P-1")
        gone = make_entity("product", "Mocha", "P-2")
        make_entity("recipe", "Latte recipe", "R-1")
        entity_service.delete_entity(gone.id)

        listed = entity_service.list_entities(ORG, "product")
        assert [e.id for e in listed] == [keep.id]

    def test_list_limit(self, entity_service, make_entity):
        for i in range(3):
            make_entity("product", f"P{i}", f"P-{i}")
        assert len(entity_service.list_entities(ORG, "product", limit=2)) == 2

    def test_search_name_or_code(self, entity_service, make_entity):
        make_entity("product", "Iced Latte", "PRD-001")
        make_entity("product", "Mocha", "LAT-9")
        make_entity("product", "Tea", "T-1")
        make_entity("product", "Latte", "X-1", organization_id=OTHER_ORG)

        found = entity_service.search_entities(ORG, "lat")
        assert [e.entity_name for e in found] == ["Iced Latte", "Mocha"]

    def test_search_type_filter_and_wildcards(self, entity_service, make_entity):
        make_entity("product", "100% Arabica", "P-1")
        make_entity("product", "Robusta", "P-2")
        make_entity("supplier", "100% Beans", "S-1")

        found = entity_service.search_entities(ORG, "100%", entity_type="product")
        assert [e.entity_name for e in found] == ["100% Arabica"]


class TestUpdateEntity:

    def test_rename_and_recode(self, entity_service, transaction_service, make_entity):
        info = make_entity("product", "Latte", "P-1")

        updated = entity_service.update_entity(info.id, entity_name="Caffe Latte", entity_code="P-100")

        assert updated.entity_name == "Caffe Latte"
        assert updated.entity_code == "P-100"
        audit = transaction_service.list_transactions(ORG, "entity_update")[0]
        assert audit.transaction_data["changes"]["entity_code"] == {"from": "P-1", "to": "P-100"}

    def test_recode_conflict_rolls_back_rename(self, entity_service, make_entity):
        make_entity("product", "Latte", "P-1")
        second = make_entity("product", "Mocha", "P-2")

        with pytest.raises(DuplicateEntityCodeError) as exc_info:
            entity_service.update_entity(second.id, entity_name="Renamed", entity_code="P-1")

        assert exc_info.value.entity_code == "P-1"
        assert exc_info.value.entity_type == "product"
        assert exc_info.value.organization_id == second.organization_id

        reloaded = entity_service.get_entity(second.id)
        assert reloaded.entity_name == "Mocha"
        assert reloaded.entity_code == "P-2"

    def test_replace_fields_is_default(self, entity_service, make_entity):
        info = make_entity(dynamic_fields={"price": "4", "size": "L"})

        updated = entity_service.update_entity(info.id, dynamic_fields={"color": "brown"})

        assert updated.dynamic_fields == {"color": "brown"}

    def test_none_leaves_fields_untouched(self, entity_service, make_entity):
        info = make_entity(dynamic_fields={"size": "L"})
        updated = entity_service.update_entity(info.id, entity_name="New name")
        assert updated.dynamic_fields == {"size": "L"}

    def test_upsert_versions_price(self, entity_service, transaction_service, make_entity):
        info = make_entity(dynamic_fields={"price": Decimal("10"), "size": "L"})

        updated = entity_service.update_entity(
            info.id,
            dynamic_fields={"price": Decimal("12"), "size": "L", "color": "red"},
            replace_fields=False,
        )

        assert updated.dynamic_fields == {"price": Decimal("12"), "size": "L", "color": "red"}
        history = entity_service.metadata_history(info.id, "field_history", "price")
        assert len(history) == 1
        assert not history[0].is_active
        assert history[0].metadata_value == {
            "value": "10",
            "field_type": "decimal",
            "replaced_by": "12",
        }
        changes = transaction_service.list_transactions(ORG, "entity_update")[0].transaction_data["changes"]
        assert changes["fields_versioned"] == ["price"]
        assert changes["fields_kept"] == ["size"]
        assert changes["fields_added"] == ["color"]

    def test_upsert_overwrites_plain_field(self, entity_service, make_entity):
        info = make_entity(dynamic_fields={"color": "red"})
        updated = entity_service.update_entity(
            info.id, dynamic_fields={"color": "blue"}, replace_fields=False
        )
        assert updated.get("color") == "blue"
        assert entity_service.metadata_history(info.id, "field_history", "color") == []

    def test_update_deleted_entity(self, entity_service, make_entity):
        info = make_entity()
        entity_service.delete_entity(info.id)
        with pytest.raises(EntityInactiveError):
            entity_service.update_entity(info.id, entity_name="x")

    def test_update_wrong_org(self, entity_service, make_entity):
        info = make_entity()
        with pytest.raises(EntityNotFoundError):
            entity_service.update_entity(info.id, entity_name="x", organization_id=OTHER_ORG)


class TestDeleteEntity:

    def test_soft_delete(self, session, entity_service, transaction_service, make_entity):
        info = make_entity("product", "Latte", "P-1")

        deleted = entity_service.delete_entity(info.id, ORG)

        assert not deleted.is_active
        assert _count(session, Entity, Entity.id == info.id) == 1
        assert len(transaction_service.list_transactions(ORG, "entity_delete")) == 1

    def test_code_reusable_after_delete(self, entity_service, make_entity):
        info = make_entity("product", "Latte", "P-1")
        entity_service.delete_entity(info.id)
        again = make_entity("product", "Latte v2", "P-1")
        assert again.id != info.id

    def test_delete_twice(self, entity_service, make_entity):
        info = make_entity()
        entity_service.delete_entity(info.id)
        with pytest.raises(EntityInactiveError):
            entity_service.delete_entity(info.id)


class TestMetadata:

    def test_new_version_supersedes(self, entity_service, make_entity):
        info = make_entity()
        entity_service.set_metadata(info.id, "pricing", "tier", "gold")
        entity_service.set_metadata(info.id, "pricing", "tier", "platinum")

        history = entity_service.metadata_history(info.id, "pricing", "tier")
        assert [h.metadata_value for h in history] == ["platinum", "gold"]
        assert [h.is_active for h in history] == [True, False]
        assert entity_service.get_entity(info.id).metadata["pricing"] == {"tier": "platinum"}

    def test_metadata_on_update(self, entity_service, make_entity):
        info = make_entity(metadata=[{"metadata_type": "ops", "metadata_key": "station", "metadata_value": 1}])
        updated = entity_service.update_entity(
            info.id,
            metadata=[{"metadata_type": "ops", "metadata_key": "station", "metadata_value": 2}],
        )
        assert updated.metadata == {"ops": {"station": 2}}


class TestRelationships:

    def test_create_and_follow(self, entity_service, make_entity):
        recipe = make_entity("recipe", "Latte recipe", "R-1")
        milk = make_entity("ingredient", "Milk", "I-1")

        rel = entity_service.create_relationship(
            recipe.id, milk.id, "recipe_uses_ingredient", relationship_data={"qty": Decimal("0.2")}
        )

        assert rel.relationship_data == {"qty": "0.2"}
        related = entity_service.get_related_entities(recipe.id, "recipe_uses_ingredient")
        assert [e.id for e in related] == [milk.id]
        assert entity_service.get_entity(recipe.id).related_ids("recipe_uses_ingredient") == (milk.id,)

    def test_self_edge_rejected(self, entity_service, make_entity):
        info = make_entity()
        with pytest.raises(SelfRelationshipError):
            entity_service.create_relationship(info.id, info.id, "parent_of")

    def test_cross_tenant_rejected(self, entity_service, make_entity):
        mine = make_entity()
        theirs = make_entity(organization_id=OTHER_ORG)
        with pytest.raises(CrossTenantRelationshipError):
            entity_service.create_relationship(mine.id, theirs.id, "linked_to")

    def test_deactivate(self, entity_service, make_entity):
        a = make_entity()
        b = make_entity()
        rel = entity_service.create_relationship(a.id, b.id, "linked_to")

        entity_service.deactivate_relationship(rel.id, ORG)

        assert entity_service.get_related_entities(a.id, "linked_to") == []

    def test_deactivate_unknown(self, entity_service):
        with pytest.raises(RelationshipNotFoundError):
            entity_service.deactivate_relationship(uuid4())

    def test_duplicate_edges_allowed(self, entity_service, make_entity):
        a = make_entity()
        b = make_entity()
        entity_service.create_relationship(a.id, b.id, "linked_to")
        entity_service.create_relationship(a.id, b.id, "linked_to")
        assert len(entity_service.get_entity(a.id).relationships) == 2

    def test_create_linked_entity(self, entity_service, make_entity):
        client = make_entity("client", "Acme Group", "CL-1")

        child = entity_service.create_linked_entity(
            client.id,
            "client_organization",
            "organization",
            "Acme Coffee",
            "ORG-1",
            dynamic_fields={"country": "GB"},
        )

        assert child.organization_id == ORG
        related = entity_service.get_related_entities(client.id, "client_organization")
        assert [e.entity_code for e in related] == ["ORG-1"]

    def test_linked_entity_conflict_leaves_no_edge(self, entity_service, make_entity):
        client = make_entity("client", "Acme Group", "CL-1")
        make_entity("organization", "Existing", "ORG-1")

        with pytest.raises(DuplicateEntityCodeError):
            entity_service.create_linked_entity(
                client.id, "client_organization", "organization", "Acme Coffee", "ORG-1"
            )

        assert entity_service.get_related_entities(client.id, "client_organization") == []


class TestAnalytics:

    def test_counts(self, entity_service, make_entity):
        info = make_entity(
            dynamic_fields={"a": "1", "b": "2"},
            metadata=[MetadataEntry("ops", "station", "bar")],
        )
        other = make_entity()
        entity_service.create_relationship(info.id, other.id, "linked_to")
        entity_service.update_entity(info.id, entity_name="Renamed")

        analytics = entity_service.get_entity_analytics(info.id, ORG)

        assert analytics.related_entity_count == 1
        assert analytics.metadata_count == 1
        assert analytics.dynamic_field_count == 2
        assert analytics.transaction_count == 2
        assert {t.transaction_type for t in analytics.recent_activity} == {
            "entity_create",
            "entity_update",
        }

    def test_recent_limit(self, entity_service, make_entity):
        info = make_entity()
        for i in range(3):
            entity_service.update_entity(info.id, entity_name=f"v{i}")
        analytics = entity_service.get_entity_analytics(info.id, recent_limit=2)
        assert analytics.transaction_count == 4
        assert len(analytics.recent_activity) == 2


class TestBulkCreate:

    def test_partial_success(self, entity_service):
        result = entity_service.bulk_create_entities(
            ORG,
            "recipe",
            [
                {"entity_name": "Latte", "entity_code": "R-1", "dynamic_fields": {"yield": 2}},
                {"entity_name": "Latte again", "entity_code": "R-1"},
                {"entity_code": "R-3"},
                {"entity_name": "Mocha", "entity_code": "R-4"},
            ],
        )

        assert result.success == 2
        assert result.failed == 2
        assert [(e.row, e.code) for e in result.errors] == [
            (1, "DUPLICATE_ENTITY_CODE"),
            (2, "INVALID_ENTITY_DATA"),
        ]
        assert len(entity_service.list_entities(ORG, "recipe")) == 2
        assert set(result.created_ids) == {e.id for e in entity_service.list_entities(ORG, "recipe")}

    def test_requires_org(self, entity_service):
        with pytest.raises(MissingOrganizationError):
            entity_service.bulk_create_entities(None, "recipe", [])
