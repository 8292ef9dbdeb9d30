"""Tests for the check-validate-write registration flow."""

import pytest

from tests.conftest import ORG
from universal_kernel.domain.dtos import PreventionAction
from universal_kernel.exceptions import DuplicateRejectedError
from universal_services.registration_orchestrator import (
    RegistrationOrchestrator,
    RegistrationStatus,
)


@pytest.fixture
def orchestrator(session, entity_service, naming_engine):
    return RegistrationOrchestrator(
        session, entity_service=entity_service, naming_engine=naming_engine
    )


class TestCreated:

    def test_clean_payload_creates(self, orchestrator, entity_service):
        outcome = orchestrator.register_entity(
            ORG, "product", "Flat White", "PRD-FW", dynamic_fields={"price": "3.20"}
        )

        assert outcome.status is RegistrationStatus.CREATED
        assert outcome.created
        assert outcome.duplicate_check.prevention_action is PreventionAction.ALLOW
        assert outcome.naming_issues == ()
        assert entity_service.get_entity(outcome.entity.id, ORG).get("price") == "3.20"

    def test_naming_issues_are_advisory(self, orchestrator, captured_logs):
        outcome = orchestrator.register_entity(
            ORG, "product", "Mocha", "PRD-MO", dynamic_fields={"name": "Mocha"}
        )

        assert outcome.created
        assert [name for name, _ in outcome.naming_issues] == ["name"]
        issue = outcome.naming_issues[0][1]
        assert not issue.is_valid
        assert issue.suggestion
        record = next(r for r in captured_logs() if r["message"] == "registration_naming_issues")
        assert record["fields"] == ["name"]

    def test_rule_fields_are_known_attributes(self, orchestrator):
        issues = orchestrator.naming_issues(["price", "salary", "phone", "flavour"], "customer")

        assert [name for name, _ in issues] == ["flavour"]
        assert issues[0][1].suggestion == "entity_flavour"

    def test_business_keys_only_known_for_their_type(self, orchestrator):
        assert "invoice_number" in orchestrator.known_fields("invoice")
        assert "invoice_number" not in orchestrator.known_fields("product")
        assert "price" in orchestrator.known_fields()


class TestRejected:

    def test_same_code_raises(self, orchestrator, make_entity, captured_logs):
        existing = make_entity("product", "Latte", "PRD-LT")

        with pytest.raises(DuplicateRejectedError) as exc_info:
            orchestrator.register_entity(ORG, "product", "Latte Large", "PRD-LT")

        err = exc_info.value
        assert err.code == "DUPLICATE_REJECTED"
        assert err.duplicate_type == "entity_code"
        assert err.duplicate_ids == [existing.id]
        assert any(r["message"] == "registration_rejected" for r in captured_logs())

    def test_outcome_without_raise(self, orchestrator, make_entity, entity_service):
        make_entity("product", "Latte", "PRD-LT")

        outcome = orchestrator.register_entity(
            ORG, "product", "Latte Large", "PRD-LT", raise_on_reject=False
        )

        assert outcome.status is RegistrationStatus.REJECTED
        assert outcome.entity is None
        assert len(entity_service.list_entities(ORG, "product")) == 1


class TestReviewRequired:

    @pytest.fixture
    def existing_customer(self, make_entity):
        return make_entity(
            "customer", "Jane Doe", "C-1", dynamic_fields={"email": "jane@example.com"}
        )

    def test_business_key_match_writes_nothing(
        self, orchestrator, entity_service, existing_customer, captured_logs
    ):
        outcome = orchestrator.register_entity(
            ORG, "customer", "J. Doe", "C-2", dynamic_fields={"email": "jane@example.com"}
        )

        assert outcome.status is RegistrationStatus.REVIEW_REQUIRED
        assert not outcome.created
        assert outcome.duplicate_check.prevention_action is PreventionAction.MERGE
        assert existing_customer.id in outcome.duplicate_check.duplicate_ids
        assert [c.id for c in entity_service.list_entities(ORG, "customer")] == [existing_customer.id]
        record = next(r for r in captured_logs() if r["message"] == "registration_review_required")
        assert record["prevention_action"] == "merge"

    def test_exact_name_needs_review(self, orchestrator, existing_customer):
        outcome = orchestrator.register_entity(ORG, "customer", "jane doe", "C-3")

        assert outcome.status is RegistrationStatus.REVIEW_REQUIRED
        assert outcome.duplicate_check.prevention_action is PreventionAction.MANUAL_REVIEW

    def test_allow_review_creates(self, orchestrator, existing_customer):
        outcome = orchestrator.register_entity(
            ORG,
            "customer",
            "J. Doe",
            "C-2",
            dynamic_fields={"email": "jane@example.com"},
            allow_review=True,
        )

        assert outcome.status is RegistrationStatus.CREATED
        assert outcome.entity.entity_code == "C-2"
        assert outcome.duplicate_check.has_duplicates
