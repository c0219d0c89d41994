from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Sequence

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .configuration import parse_base_constants, parse_rules
from .errors import ConfigurationUnavailableError
from .models.quote import BaseConstants
from .models.rule import Rule, ServiceType

logger = logging.getLogger(__name__)


class FirestoreConfigurationGateway:
    """Firestore-backed rule and constant provider for production use.

    Rules live in the ``rules`` collection. Other settings are key-value
    documents in ``configurations`` whose id is ``<category>:<name>``; base
    constants of a service are stored under ``PRICING:<SERVICE_TYPE>``.
    """

    RULES_COLLECTION = "rules"
    CONFIGURATIONS_COLLECTION = "configurations"
    PRICING_CATEGORY = "PRICING"

    def __init__(self, project_id: str | None = None, *, client: Any | None = None) -> None:
        self._db = client or firestore.Client(project=project_id)

    def get_active_rules(self, service_type: ServiceType) -> Sequence[Rule]:
        """Load the active rules of one service type."""
        service_type = ServiceType(service_type)
        query = (
            self._db.collection(self.RULES_COLLECTION)
            .where(filter=FieldFilter("service_type", "==", service_type.value))
            .where(filter=FieldFilter("is_active", "==", True))
        )
        try:
            docs = list(query.stream())
        except google_exceptions.GoogleAPICallError as exc:
            raise ConfigurationUnavailableError(
                f"Could not load rules for {service_type.value}: {exc}"
            ) from exc

        rules = parse_rules(self._to_rule_payload(doc.id, doc.to_dict()) for doc in docs)

        logger.info(
            "Loaded pricing rules",
            extra={
                "service_type": service_type.value,
                "documents": len(docs),
                "rules": len(rules),
            },
        )
        return tuple(rules)

    def get_base_constants(self, service_type: ServiceType) -> BaseConstants:
        """Load the base constants stored under ``PRICING:<service_type>``."""
        service_type = ServiceType(service_type)
        doc_id = self.configuration_key(self.PRICING_CATEGORY, service_type.value)
        try:
            doc = self._db.collection(self.CONFIGURATIONS_COLLECTION).document(doc_id).get()
        except google_exceptions.GoogleAPICallError as exc:
            raise ConfigurationUnavailableError(f"Could not load configuration {doc_id}: {exc}") from exc

        if not doc.exists:
            raise ConfigurationUnavailableError(f"Configuration {doc_id} not found")

        data = doc.to_dict() or {}
        if data.get("is_active") is False:
            raise ConfigurationUnavailableError(f"Configuration {doc_id} is inactive")
        return parse_base_constants(service_type, data.get("value"))

    @staticmethod
    def configuration_key(category: str, name: str) -> str:
        return f"{category}:{name}"

    def _to_rule_payload(self, doc_id: str, data: dict | None) -> dict:
        """Convert a Firestore document dict into a rule payload."""
        payload: dict[str, Any] = {"id": doc_id}
        for key, value in (data or {}).items():
            # Timestamps come back as datetimes; validity windows are calendar dates.
            if key in ("valid_from", "valid_to", "validFrom", "validTo") and isinstance(value, datetime):
                value = value.date()
            payload[key] = value
        return payload


__all__ = ["FirestoreConfigurationGateway"]
