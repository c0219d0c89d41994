from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Protocol, Sequence

from pydantic import ValidationError

from .errors import ConfigurationUnavailableError
from .models.quote import BaseConstants
from .models.rule import Rule, ServiceType

logger = logging.getLogger(__name__)


class ConfigurationGateway(Protocol):
    def get_active_rules(self, service_type: ServiceType) -> Sequence[Rule]:
        ...

    def get_base_constants(self, service_type: ServiceType) -> BaseConstants:
        ...


def parse_rules(payloads: Iterable[Mapping[str, Any]]) -> list[Rule]:
    """Validate stored rule payloads, skipping (and logging) the invalid ones.

    A rule whose condition is malformed is kept: its condition becomes an
    ``UnparsableCondition`` that the aggregator reports and excludes.
    """
    rules: list[Rule] = []
    for payload in payloads:
        try:
            rules.append(Rule.model_validate(payload))
        except ValidationError as exc:
            rule_id = payload.get("id") if isinstance(payload, Mapping) else None
            logger.warning(
                "Skipping invalid pricing rule",
                extra={"rule_id": rule_id, "error": str(exc)},
            )
    return rules


def parse_base_constants(service_type: ServiceType, payload: Any) -> BaseConstants:
    if payload is None:
        raise ConfigurationUnavailableError(f"No base constants configured for {service_type.value}")
    try:
        return BaseConstants.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationUnavailableError(
            f"Invalid base constants for {service_type.value}: {exc.error_count()} error(s)"
        ) from exc


class LocalConfigurationGateway:
    """Reads rules and constants from JSON files, for development and tests.

    Layout: ``<base_path>/rules/<SERVICE_TYPE>.json`` holds a list of rules,
    ``<base_path>/constants.json`` maps service types to base constants.
    """

    def __init__(self, *, base_path: Path) -> None:
        self._base_path = base_path

    def get_active_rules(self, service_type: ServiceType) -> Sequence[Rule]:
        service_type = ServiceType(service_type)
        data = self._read_json(self._base_path / "rules" / f"{service_type.value}.json")
        if not isinstance(data, list):
            raise ConfigurationUnavailableError(f"Rule file for {service_type.value} must hold a list")
        return tuple(
            rule
            for rule in parse_rules(data)
            if rule.is_active and rule.service_type is service_type
        )

    def get_base_constants(self, service_type: ServiceType) -> BaseConstants:
        service_type = ServiceType(service_type)
        data = self._read_json(self._base_path / "constants.json")
        if not isinstance(data, dict):
            raise ConfigurationUnavailableError("constants.json must hold an object keyed by service type")
        return parse_base_constants(service_type, data.get(service_type.value))

    def _read_json(self, file_path: Path) -> Any:
        if not file_path.exists():
            raise ConfigurationUnavailableError(f"Configuration file not found: {file_path}")
        try:
            with file_path.open("r", encoding="utf-8") as fp:
                return json.load(fp)
        except json.JSONDecodeError as exc:
            raise ConfigurationUnavailableError(f"Configuration file is not valid JSON: {file_path}") from exc


@dataclass(frozen=True)
class _CacheEntry:
    value: Any
    loaded_at: float


class CachedConfigurationGateway:
    """Time-to-live cache in front of another gateway.

    Entries expire after ``ttl_seconds`` and can be dropped explicitly when an
    administrator edits a rule. Loaded rule sets are tuples, so callers always
    hold an immutable snapshot.
    """

    def __init__(
        self,
        delegate: ConfigurationGateway,
        *,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._delegate = delegate
        self._ttl = ttl_seconds
        self._clock = clock
        self._rules: Dict[ServiceType, _CacheEntry] = {}
        self._constants: Dict[ServiceType, _CacheEntry] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def get_active_rules(self, service_type: ServiceType) -> Sequence[Rule]:
        return self._cached(
            self._rules,
            ServiceType(service_type),
            lambda key: tuple(self._delegate.get_active_rules(key)),
        )

    def get_base_constants(self, service_type: ServiceType) -> BaseConstants:
        return self._cached(self._constants, ServiceType(service_type), self._delegate.get_base_constants)

    def invalidate(self, service_type: ServiceType | None = None) -> None:
        key = ServiceType(service_type) if service_type is not None else None
        with self._lock:
            self._generation += 1
            if key is None:
                self._rules.clear()
                self._constants.clear()
            else:
                self._rules.pop(key, None)
                self._constants.pop(key, None)
        logger.info(
            "Invalidated configuration cache",
            extra={"service_type": key.value if key else "ALL"},
        )

    def _cached(self, cache: Dict[ServiceType, _CacheEntry], key: ServiceType, loader: Callable[[ServiceType], Any]):
        now = self._clock()
        with self._lock:
            entry = cache.get(key)
            if entry is not None and now - entry.loaded_at < self._ttl:
                return entry.value
            generation = self._generation

        # Loaded outside the lock.
        value = loader(key)

        with self._lock:
            # An invalidation that raced the load wins; the value is still returned once.
            if generation == self._generation:
                cache[key] = _CacheEntry(value=value, loaded_at=now)
        logger.debug("Loaded configuration", extra={"service_type": key.value})
        return value


__all__ = [
    "CachedConfigurationGateway",
    "ConfigurationGateway",
    "LocalConfigurationGateway",
    "parse_base_constants",
    "parse_rules",
]
