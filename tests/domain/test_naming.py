"""
Tests for the NamingConventionEngine.

Covers:
- Pattern priority and fixed confidence scores
- Per-table conventions and the menu_* name exception
- Suggestions (legacy map, prefix heuristics, purpose)
- Field name generation
- Table audit and migration SQL
"""

import pytest

from universal_kernel.domain.naming import (
    CONVENTION_MISMATCH,
    DEFAULT_NAMING_RULES,
    EXACT,
    FOREIGN_KEY,
    REJECTED,
    NamingConventionEngine,
    NamingRules,
    TableConvention,
    extract_entity_type,
    is_sql_identifier,
)


@pytest.fixture
def engine():
    return NamingConventionEngine()


class TestExtractEntityType:

    @pytest.mark.parametrize(
        "table_name, expected",
        [
            ("core_clients", "client"),
            ("core_entities", "entity"),
            ("core_categories", "category"),
            ("universal_transactions", "transaction"),
            ("menu_items", "menu_item"),
            ("widgets", "widget"),
            ("s", "s"),
        ],
    )
    def test_strips_prefix_and_plural(self, table_name, expected):
        assert extract_entity_type(table_name) == expected


class TestValidateFieldName:

    def test_primary_key(self, engine):
        result = engine.validate_field_name("core_clients", "id")
        assert result.is_valid
        assert result.confidence == EXACT
        assert result.pattern == "Primary key pattern"

    def test_foreign_key_any_table(self, engine):
        result = engine.validate_field_name("some_unknown_table", "organization_id")
        assert result.is_valid
        assert result.confidence == FOREIGN_KEY

    def test_code_with_table_prefix(self, engine):
        result = engine.validate_field_name("core_clients", "client_code")
        assert result.is_valid
        assert result.confidence == EXACT

    def test_code_with_wrong_prefix_suggests_table_prefix(self, engine):
        result = engine.validate_field_name("core_clients", "product_code")
        assert not result.is_valid
        assert result.confidence == CONVENTION_MISMATCH
        assert result.suggestion == "client_code"
        assert "client" in result.error

    def test_code_uses_convention_prefix_not_table_name(self, engine):
        assert engine.validate_field_name("core_organizations", "org_code").is_valid
        assert not engine.validate_field_name("core_organizations", "organization_code").is_valid

    def test_name_with_table_prefix(self, engine):
        assert engine.validate_field_name("core_clients", "client_name").is_valid

    def test_mismatched_name_allowed_by_convention(self, engine):
        result = engine.validate_field_name("core_users", "full_name")
        assert result.is_valid
        assert result.pattern == "Convention pattern: name"

    @pytest.mark.parametrize("field_name", ["is_deleted", "is_active", "approved_at", "created_at"])
    def test_boolean_and_timestamp_patterns(self, engine, field_name):
        assert engine.validate_field_name("core_entities", field_name).is_valid

    @pytest.mark.parametrize("field_name", ["email", "phone", "currency", "metadata_key"])
    def test_semantic_allow_list(self, engine, field_name):
        result = engine.validate_field_name("core_entities", field_name)
        assert result.is_valid
        assert result.pattern == "Semantic naming"

    def test_entity_type_convention(self, engine):
        result = engine.validate_field_name("core_entities", "entity_type")
        assert result.is_valid
        assert result.pattern == "Convention pattern: type"

    def test_bare_name_allowed_on_menu_tables(self, engine):
        result = engine.validate_field_name("menu_items", "name")
        assert result.is_valid
        assert result.pattern == "Entity name field exception"

    def test_bare_name_rejected_elsewhere_with_suggestion(self, engine):
        result = engine.validate_field_name("core_entities", "name")
        assert not result.is_valid
        assert result.confidence == REJECTED
        assert result.suggestion == "entity_name"

    def test_legacy_name_suggestion(self, engine):
        result = engine.validate_field_name("core_users", "first_name")
        assert not result.is_valid
        assert result.suggestion == "full_name"

    def test_status_suggests_is_active(self, engine):
        result = engine.validate_field_name("core_clients", "status")
        assert not result.is_valid
        assert result.suggestion == "is_active"

    def test_never_raises_on_odd_input(self, engine):
        for field_name in ("", " ", "名前", "a;drop table x", "_", "__id__"):
            result = engine.validate_field_name("core_entities", field_name)
            assert isinstance(result.is_valid, bool)

    def test_validate_on_type_matches_validate(self, engine):
        assert engine.validate_on_type("core_clients", "status") == engine.validate_field_name(
            "core_clients", "status"
        )


class TestSuggestCorrectName:

    def test_valid_name_unchanged(self, engine):
        assert engine.suggest_correct_name("core_clients", "client_code") == "client_code"

    def test_short_name_containing_name(self, engine):
        assert engine.suggest_correct_name("core_clients", "fname") == "client_name"

    def test_short_name_containing_code(self, engine):
        assert engine.suggest_correct_name("core_organizations", "code") == "org_code"

    def test_unknown_attribute_gets_entity_prefix(self, engine):
        assert engine.suggest_correct_name("core_organizations", "title") == "organization_title"

    def test_prefix_not_doubled(self, engine):
        assert (
            engine.suggest_correct_name("core_organizations", "organization_title")
            == "organization_title"
        )

    def test_purpose_wins_when_it_validates(self, engine):
        assert engine.suggest_correct_name("core_clients", "label", purpose="entity_name") == "client_name"

    def test_legacy_mapping(self, engine):
        assert engine.suggest_correct_name("core_users", "lname") == "full_name"
        assert engine.suggest_correct_name("core_users", "last_name") == "full_name"

    @pytest.mark.parametrize(
        "table_name, field_name",
        [
            ("core_clients", "x_code"),
            ("core_organizations", "client_code"),
            ("core_entities", "status_code"),
            ("widgets", "product_code"),
        ],
    )
    def test_mismatched_code_agrees_with_validation(self, engine, table_name, field_name):
        suggestion = engine.suggest_correct_name(table_name, field_name)
        assert suggestion == engine.validate_field_name(table_name, field_name).suggestion
        assert engine.validate_field_name(table_name, suggestion).is_valid

    def test_plain_attribute_on_entities_table(self, engine):
        assert engine.suggest_correct_name("core_entities", "price") == "entity_price"


class TestGenerateFieldName:

    @pytest.mark.parametrize(
        "table_name, purpose, expected",
        [
            ("core_clients", "primary_key", "id"),
            ("core_clients", "entity_code", "client_code"),
            ("core_clients", "entity_name", "client_name"),
            ("core_clients", "entity_type", "client_type"),
            ("widgets", "entity_type", "widget_type"),
            ("core_clients", "boolean_status", "is_active"),
            ("core_clients", "created_timestamp", "created_at"),
            ("core_clients", "updated_timestamp", "updated_at"),
            ("core_clients", "contact_email", "email"),
            ("core_clients", "Loyalty Tier", "loyalty_tier"),
        ],
    )
    def test_purposes(self, engine, table_name, purpose, expected):
        assert engine.generate_field_name(table_name, purpose) == expected

    def test_foreign_key_with_reference(self, engine):
        assert (
            engine.generate_field_name("core_clients", "foreign_key", "uuid", references="core_organizations")
            == "organization_id"
        )

    def test_foreign_key_without_reference(self, engine):
        assert engine.generate_field_name("core_clients", "foreign_key") == "client_id"

    def test_data_type_does_not_change_result(self, engine):
        assert engine.generate_field_name("core_clients", "entity_code", "integer") == "client_code"


class TestAuditTable:

    def test_audit_reports_missing_and_invalid(self, engine):
        audit = engine.audit_table(
            "core_entities",
            [
                "id",
                "organization_id",
                "entity_type",
                "entity_name",
                "entity_code",
                "created_at",
                "updated_at",
                "misc",
            ],
        )
        assert audit.entity_type == "entity"
        assert audit.missing_required == ("is_active",)
        assert audit.invalid_fields == ("misc",)
        assert audit.summary.has_id
        assert audit.summary.foreign_keys == 1
        assert audit.summary.timestamps == 2
        assert audit.summary.status_fields == 0
        assert audit.summary.confidence == pytest.approx(5 / 6)

    def test_unknown_table_has_no_required_fields(self, engine):
        audit = engine.audit_table("widgets", ["id", "widget_name"])
        assert audit.missing_required == ()
        assert audit.invalid_fields == ()

    def test_analyze_empty(self):
        summary = NamingConventionEngine.analyze_field_patterns([])
        assert summary.confidence == 0.0


class TestMigrationScript:

    def test_rename_and_index(self, engine):
        sql = engine.generate_migration_script(
            "core_clients", [("name", "client_name"), ("status", "is_active")]
        )
        assert "ALTER TABLE core_clients RENAME COLUMN name TO client_name;" in sql
        assert "ALTER TABLE core_clients RENAME COLUMN status TO is_active;" in sql
        assert "CREATE INDEX IF NOT EXISTS idx_core_clients_client_name ON core_clients(client_name);" in sql
        assert "ON core_clients(is_active)" not in sql

    def test_invalid_identifier_skipped(self, engine):
        sql = engine.generate_migration_script(
            "core_clients", [("bad name", "client_name"), ("code", "x; DROP TABLE y")]
        )
        assert "RENAME COLUMN" not in sql
        assert sql.count("-- skipped: invalid identifier") == 2

    def test_invalid_table_skipped(self, engine):
        sql = engine.generate_migration_script("core_clients; DROP", [("name", "client_name")])
        assert "ALTER TABLE" not in sql
        assert "-- skipped: invalid table name" in sql

    def test_identifier_rules(self):
        assert is_sql_identifier("client_name")
        assert is_sql_identifier("_x1")
        assert not is_sql_identifier("1abc")
        assert not is_sql_identifier("a" * 64)
        assert not is_sql_identifier("a-b")


class TestInjectedRules:

    def test_custom_convention(self):
        rules = NamingRules(
            conventions={
                "core_recipes": TableConvention(
                    table_name="core_recipes",
                    prefix="recipe",
                    patterns={"yield": "portion_count"},
                )
            },
        )
        engine = NamingConventionEngine(rules)
        assert engine.validate_field_name("core_recipes", "recipe_code").is_valid
        assert engine.validate_field_name("core_recipes", "portion_count").is_valid
        # Default semantic list is not inherited
        assert not engine.validate_field_name("core_recipes", "email").is_valid

    def test_defaults_used_when_no_rules(self):
        assert NamingConventionEngine().rules is DEFAULT_NAMING_RULES
