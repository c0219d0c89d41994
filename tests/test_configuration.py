import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest
from google.api_core import exceptions as google_exceptions

from quotation_pricing.configuration import (
    CachedConfigurationGateway,
    LocalConfigurationGateway,
    parse_rules,
)
from quotation_pricing.errors import ConfigurationUnavailableError
from quotation_pricing.firestore_configuration import FirestoreConfigurationGateway
from quotation_pricing.models.condition import OptionSelectedCondition
from quotation_pricing.models.estimation import EstimationInput
from quotation_pricing.models.quote import AddOn, BaseConstants, PricingContext
from quotation_pricing.models.rule import ServiceType
from quotation_pricing.pricing import compute_quote


def local_gateway() -> LocalConfigurationGateway:
    return LocalConfigurationGateway(base_path=Path("data/config"))


def test_local_gateway_returns_active_rules_of_one_service():
    rules = local_gateway().get_active_rules(ServiceType.moving)

    assert isinstance(rules, tuple)
    assert all(rule.is_active for rule in rules)
    assert all(rule.service_type is ServiceType.moving for rule in rules)
    assert "mv-winter-promo" not in {rule.id for rule in rules}

    elevator = next(rule for rule in rules if rule.id == "mv-elevator-unavailable")
    assert elevator.condition == OptionSelectedCondition(option="elevator_unavailable")


def test_local_gateway_reads_base_constants():
    constants = local_gateway().get_base_constants("MOVING")

    assert constants.price_per_m3 == 35
    assert constants.add_on_prices[AddOn.insurance] == 30


def test_missing_rule_file_is_a_configuration_error():
    with pytest.raises(ConfigurationUnavailableError):
        local_gateway().get_active_rules(ServiceType.delivery)


def test_missing_constants_are_a_configuration_error():
    with pytest.raises(ConfigurationUnavailableError):
        local_gateway().get_base_constants(ServiceType.service)


def test_malformed_rule_file_is_a_configuration_error(tmp_path):
    (tmp_path / "rules").mkdir()
    (tmp_path / "rules" / "MOVING.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigurationUnavailableError):
        LocalConfigurationGateway(base_path=tmp_path).get_active_rules(ServiceType.moving)


def test_empty_rule_file_yields_no_rules(tmp_path):
    (tmp_path / "rules").mkdir()
    (tmp_path / "rules" / "PACKING.json").write_text("[]", encoding="utf-8")

    assert LocalConfigurationGateway(base_path=tmp_path).get_active_rules(ServiceType.packing) == ()


def test_invalid_rules_are_skipped_and_logged(caplog):
    payloads = [
        {"id": "ok", "name": "ok", "value": 10, "percentBased": True, "category": "SURCHARGE", "serviceType": "MOVING"},
        {"id": "bad", "name": "bad", "value": 10, "percentBased": True, "category": "DISCOUNT", "serviceType": "MOVING"},
    ]

    with caplog.at_level(logging.WARNING, logger="quotation_pricing.configuration"):
        rules = parse_rules(payloads)

    assert [rule.id for rule in rules] == ["ok"]
    assert any(getattr(record, "rule_id", None) == "bad" for record in caplog.records)


class CountingGateway:
    def __init__(self) -> None:
        self.rule_loads = 0
        self.constant_loads = 0

    def get_active_rules(self, service_type):
        self.rule_loads += 1
        return local_gateway().get_active_rules(service_type)

    def get_base_constants(self, service_type):
        self.constant_loads += 1
        return BaseConstants(price_per_m3=self.constant_loads, price_per_km=0, price_per_worker=0)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_cache_serves_rules_until_the_ttl_expires():
    delegate = CountingGateway()
    clock = FakeClock()
    gateway = CachedConfigurationGateway(delegate, ttl_seconds=300, clock=clock)

    first = gateway.get_active_rules(ServiceType.moving)
    clock.now += 299
    second = gateway.get_active_rules("MOVING")
    assert delegate.rule_loads == 1
    assert first is second

    clock.now += 2
    gateway.get_active_rules(ServiceType.moving)
    assert delegate.rule_loads == 2


def test_invalidate_drops_one_service_type():
    delegate = CountingGateway()
    gateway = CachedConfigurationGateway(delegate, clock=FakeClock())

    gateway.get_active_rules(ServiceType.moving)
    gateway.get_active_rules(ServiceType.cleaning)
    gateway.invalidate(ServiceType.moving)
    gateway.get_active_rules(ServiceType.moving)
    gateway.get_active_rules(ServiceType.cleaning)

    assert delegate.rule_loads == 3


def test_invalidate_without_service_type_drops_everything():
    delegate = CountingGateway()
    gateway = CachedConfigurationGateway(delegate, clock=FakeClock())

    assert gateway.get_base_constants(ServiceType.moving).price_per_m3 == 1
    assert gateway.get_base_constants(ServiceType.moving).price_per_m3 == 1
    gateway.invalidate()

    assert gateway.get_base_constants(ServiceType.moving).price_per_m3 == 2


def test_cache_does_not_store_failures():
    delegate = CountingGateway()
    gateway = CachedConfigurationGateway(delegate, clock=FakeClock())

    for _ in range(2):
        with pytest.raises(ConfigurationUnavailableError):
            gateway.get_active_rules(ServiceType.delivery)

    assert delegate.rule_loads == 2


class FakeSnapshot:
    def __init__(self, doc_id, data, exists=True):
        self.id = doc_id
        self._data = data
        self.exists = exists

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeQuery:
    def __init__(self, docs, error=None):
        self.docs = docs
        self.error = error
        self.filters = []

    def where(self, *, filter):
        self.filters.append((filter.field_path, filter.op_string, filter.value))
        return self

    def stream(self):
        if self.error:
            raise self.error
        return iter(self.docs)


class FakeDocumentReference:
    def __init__(self, snapshot):
        self._snapshot = snapshot

    def get(self):
        return self._snapshot


class FakeCollection:
    def __init__(self, query=None, documents=None):
        self.query = query or FakeQuery([])
        self.documents = documents or {}

    def where(self, *, filter):
        return self.query.where(filter=filter)

    def document(self, doc_id):
        return FakeDocumentReference(self.documents.get(doc_id, FakeSnapshot(doc_id, None, exists=False)))


class FakeFirestoreClient:
    def __init__(self, collections):
        self.collections = collections

    def collection(self, name):
        return self.collections[name]


def test_firestore_gateway_queries_active_rules_of_one_service():
    docs = [
        FakeSnapshot(
            "promo",
            {
                "name": "Winter promotion",
                "value": -10,
                "percent_based": True,
                "category": "DISCOUNT",
                "service_type": "MOVING",
                "is_active": True,
                "valid_from": datetime(2026, 1, 1, tzinfo=timezone.utc),
                "valid_to": datetime(2026, 2, 28, tzinfo=timezone.utc),
            },
        ),
        FakeSnapshot("invalid", {"name": "No value", "category": "FIXED", "service_type": "MOVING", "is_active": True}),
    ]
    query = FakeQuery(docs)
    client = FakeFirestoreClient({"rules": FakeCollection(query=query)})

    rules = FirestoreConfigurationGateway(client=client).get_active_rules(ServiceType.moving)

    assert query.filters == [("service_type", "==", "MOVING"), ("is_active", "==", True)]
    assert [rule.id for rule in rules] == ["promo"]
    assert rules[0].valid_from.isoformat() == "2026-01-01"


def test_firestore_gateway_reads_constants_document():
    configurations = FakeCollection(
        documents={
            "PRICING:MOVING": FakeSnapshot(
                "PRICING:MOVING",
                {"value": {"price_per_m3": 35, "price_per_km": 2, "price_per_worker": 120}, "is_active": True},
            ),
            "PRICING:CLEANING": FakeSnapshot(
                "PRICING:CLEANING",
                {"value": {"price_per_m3": 0, "price_per_km": 0, "price_per_worker": 25}, "is_active": False},
            ),
        }
    )
    gateway = FirestoreConfigurationGateway(client=FakeFirestoreClient({"configurations": configurations}))

    assert gateway.get_base_constants(ServiceType.moving).price_per_worker == 120
    with pytest.raises(ConfigurationUnavailableError):
        gateway.get_base_constants(ServiceType.cleaning)
    with pytest.raises(ConfigurationUnavailableError):
        gateway.get_base_constants(ServiceType.packing)


def test_firestore_errors_become_configuration_errors():
    query = FakeQuery([], error=google_exceptions.ServiceUnavailable("firestore is down"))
    gateway = FirestoreConfigurationGateway(client=FakeFirestoreClient({"rules": FakeCollection(query=query)}))

    with pytest.raises(ConfigurationUnavailableError):
        gateway.get_active_rules(ServiceType.moving)


def test_configuration_keys_join_category_and_name():
    assert FirestoreConfigurationGateway.configuration_key("PRICING", "MOVING") == "PRICING:MOVING"


def test_sample_rule_files_are_valid_json():
    for rule_file in Path("data/config/rules").glob("*.json"):
        payloads = json.loads(rule_file.read_text(encoding="utf-8"))
        assert len(parse_rules(payloads)) == len(payloads), rule_file.name


@pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
def test_non_finite_rule_values_are_skipped(literal, caplog):
    payloads = json.loads(
        "["
        f'{{"id": "broken", "name": "broken", "value": {literal}, "percentBased": true,'
        ' "category": "PERCENTAGE", "serviceType": "MOVING"},'
        ' {"id": "minimum", "name": "minimum", "value": 5000, "category": "MINIMUM", "serviceType": "MOVING"}'
        "]"
    )

    with caplog.at_level(logging.WARNING, logger="quotation_pricing.configuration"):
        rules = parse_rules(payloads)

    assert [rule.id for rule in rules] == ["minimum"]
    assert any(getattr(record, "rule_id", None) == "broken" for record in caplog.records)


def test_non_finite_rule_file_still_enforces_the_minimum(tmp_path):
    (tmp_path / "rules").mkdir()
    (tmp_path / "rules" / "MOVING.json").write_text(
        '[{"id": "broken", "name": "broken", "value": NaN, "percentBased": true,'
        ' "category": "PERCENTAGE", "serviceType": "MOVING"},'
        ' {"id": "minimum", "name": "minimum", "value": 5000, "category": "MINIMUM", "serviceType": "MOVING"}]',
        encoding="utf-8",
    )
    rules = LocalConfigurationGateway(base_path=tmp_path).get_active_rules(ServiceType.moving)

    quote = compute_quote(
        EstimationInput(surface=50),
        rules,
        ServiceType.moving,
        PricingContext(distance_km=10, workers=2),
        local_gateway().get_base_constants(ServiceType.moving),
    )

    assert quote.final_price == 5000.0
    assert quote.breakdown.minimum_applied is True


@pytest.mark.parametrize("literal", ["NaN", "Infinity"])
def test_non_finite_base_constants_are_a_configuration_error(tmp_path, literal):
    (tmp_path / "constants.json").write_text(
        f'{{"MOVING": {{"price_per_m3": {literal}, "price_per_km": 2, "price_per_worker": 120}}}}',
        encoding="utf-8",
    )

    with pytest.raises(ConfigurationUnavailableError):
        LocalConfigurationGateway(base_path=tmp_path).get_base_constants(ServiceType.moving)


def test_non_finite_add_on_price_is_a_configuration_error(tmp_path):
    (tmp_path / "constants.json").write_text(
        '{"MOVING": {"price_per_m3": 35, "price_per_km": 2, "price_per_worker": 120,'
        ' "add_on_prices": {"INSURANCE": Infinity}}}',
        encoding="utf-8",
    )

    with pytest.raises(ConfigurationUnavailableError):
        LocalConfigurationGateway(base_path=tmp_path).get_base_constants(ServiceType.moving)
