from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from quotation_pricing.configuration import CachedConfigurationGateway, LocalConfigurationGateway
from quotation_pricing.errors import ConfigurationUnavailableError, InvalidInputError
from quotation_pricing.logging_config import set_trace_id, setup_logging
from quotation_pricing.models.estimation import EstimationInput, VolumeBreakdown
from quotation_pricing.models.quote import PricingContext, Quote
from quotation_pricing.models.rule import ServiceType
from quotation_pricing.pricing import PricingOrchestrator
from quotation_pricing.volume import VolumeEstimator


class EstimateVolumeResponse(BaseModel):
    volume: float
    breakdown: VolumeBreakdown


class ComputeQuoteRequest(BaseModel):
    service_type: ServiceType
    estimation: EstimationInput
    context: PricingContext = Field(default_factory=PricingContext)


class PubSubMessage(BaseModel):
    """Pub/Sub push message format."""

    message: dict[str, Any]
    subscription: str


# Environment configuration
ENVIRONMENT = os.getenv("ENVIRONMENT", "dev")
PROJECT_ID = os.getenv("PROJECT_ID")
CONFIG_PATH = os.getenv("CONFIG_PATH", "data/config")
RULES_CACHE_TTL_SECONDS = float(os.getenv("RULES_CACHE_TTL_SECONDS", "300"))

# Setup logging
setup_logging(environment=ENVIRONMENT, project_id=PROJECT_ID, service_name="quotation-pricing-api")
logger = logging.getLogger(__name__)

app = FastAPI(title="Quotation Pricing API", version="0.1.0")

# Use Firestore in production, local JSON files for dev
if ENVIRONMENT == "dev":
    source_gateway = LocalConfigurationGateway(base_path=Path(CONFIG_PATH).resolve())
else:
    from quotation_pricing.firestore_configuration import FirestoreConfigurationGateway

    source_gateway = FirestoreConfigurationGateway(project_id=PROJECT_ID)

gateway = CachedConfigurationGateway(source_gateway, ttl_seconds=RULES_CACHE_TTL_SECONDS)
volume_estimator = VolumeEstimator()
orchestrator = PricingOrchestrator(estimator=volume_estimator)


@app.middleware("http")
async def assign_trace_id(request: Request, call_next):
    trace_id = request.headers.get("x-cloud-trace-context", "").split("/")[0] or str(uuid.uuid4())
    set_trace_id(trace_id)
    try:
        return await call_next(request)
    finally:
        set_trace_id(None)


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"field": exc.field, "detail": exc.message})


@app.exception_handler(ConfigurationUnavailableError)
async def configuration_unavailable_handler(
    request: Request, exc: ConfigurationUnavailableError
) -> JSONResponse:
    logger.error("Pricing configuration unavailable", extra={"error": str(exc)})
    return JSONResponse(status_code=503, content={"detail": "Pricing configuration is unavailable"})


@app.post("/v1/volume:estimate", response_model=EstimateVolumeResponse)
async def estimate_volume(estimation: EstimationInput) -> EstimateVolumeResponse:
    breakdown = volume_estimator.explain(estimation)
    return EstimateVolumeResponse(volume=breakdown.volume, breakdown=breakdown)


@app.post("/v1/quotes:compute", response_model=Quote)
async def compute_quote(request: ComputeQuoteRequest) -> Quote:
    # The gateway may call the configuration store; keep it off the event loop.
    return await asyncio.to_thread(_compute_quote, request)


def _compute_quote(request: ComputeQuoteRequest) -> Quote:
    rules = gateway.get_active_rules(request.service_type)
    constants = gateway.get_base_constants(request.service_type)
    return orchestrator.compute_quote(
        request.estimation,
        rules,
        request.service_type,
        request.context,
        constants,
    )


@app.post("/v1/rules:invalidate")
async def invalidate_rules(pubsub_message: PubSubMessage) -> JSONResponse:
    """Drop cached rules after an administrator edit.

    This endpoint is called by a Pub/Sub push subscription on the rule-change
    topic. The message data is JSON: ``{"service_type": "MOVING"}``, or ``{}``
    to drop every cached service type.
    """
    payload: dict[str, Any] = {}
    message_data = pubsub_message.message.get("data", "")
    if message_data:
        try:
            payload = json.loads(base64.b64decode(message_data).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise HTTPException(status_code=400, detail="Message data is not base64-encoded JSON") from exc

    raw_service_type = payload.get("service_type") if isinstance(payload, dict) else None
    try:
        service_type = ServiceType(raw_service_type) if raw_service_type else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Unknown service type: {raw_service_type}") from exc

    gateway.invalidate(service_type)
    return JSONResponse(
        {"status": "invalidated", "service_type": service_type.value if service_type else None}
    )


@app.get("/health")
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok"})
