"""VitalScore MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from vitalscore.core.audit.logger import AuditLogger
from vitalscore.core.cache.ttl import TTLCache
from vitalscore.core.config.settings import Settings, get_settings
from vitalscore.core.llm.client import InnerLLMClient
from vitalscore.core.llm.provider import create_provider
from vitalscore.core.storage.database import HealthDatabase
from vitalscore.core.storage.encryption import EncryptionError, FieldEncryptor
from vitalscore.core.storage.repository import HealthRepository
from vitalscore.domains.health.connectors import WeightAdvisor
from vitalscore.domains.health.connectors.llm_advisor import LLMWeightAdvisor
from vitalscore.domains.health.connectors.memory import InMemoryHealthStore
from vitalscore.domains.health.domain_logic.pipeline import HealthScoringPipeline
from vitalscore.domains.health.domain_logic.score_models import Weights
from vitalscore.domains.health.domain_logic.weight_resolver import WeightResolver
from vitalscore.domains.health.tools.scoring_tools import register_scoring_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "VitalScore"
SERVER_VERSION = "0.1.0"


def _build_advisor(settings: Settings) -> tuple[WeightAdvisor | None, str]:
    """Pick the weight advisor from settings. Returns (advisor, provider name)."""
    if settings.llm_provider == "none":
        return None, "none"

    if settings.llm_provider == "mock":
        api_key, model = "", ""
    elif settings.llm_provider == "anthropic":
        api_key, model = settings.anthropic_api_key, settings.anthropic_model
    elif settings.llm_provider == "openai":
        api_key, model = settings.openai_api_key, settings.openai_model
    else:  # pragma: no cover
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider!r}")

    if settings.llm_provider != "mock" and not api_key:
        logger.warning(
            "No API key configured for provider '%s'; weight advisory disabled",
            settings.llm_provider,
        )
        return None, "none"

    provider = create_provider(
        provider_name=settings.llm_provider,
        api_key=api_key,
        model=model,
        timeout=settings.advisory_timeout_seconds,
    )
    logger.info("Weight advisory enabled via %s", settings.llm_provider)
    return LLMWeightAdvisor(InnerLLMClient(provider), provider_name=settings.llm_provider), settings.llm_provider


def create_app(
    *,
    store_override: HealthRepository | InMemoryHealthStore | None = None,
    advisor_override: WeightAdvisor | None = None,
    audit_logger_override: AuditLogger | None = None,
) -> FastMCP:
    """Create and configure the VitalScore MCP server.

    1. Creates the FastMCP server instance
    2. Initializes the store (encrypted SQLite, or in-memory without a key)
    3. Selects the weight advisor and wraps it in a cached resolver
    4. Builds the scoring pipeline and registers all tools
    """
    settings = get_settings()

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Daily health scoring from wearable metrics. Record samples, a "
            "profile and baselines, then calculate a 0-100 composite score "
            "with per-component breakdown, anomaly events and personal records."
        ),
    )

    # --- Storage ---
    store: HealthRepository | InMemoryHealthStore
    audit_logger = audit_logger_override
    if store_override is not None:
        store = store_override
    elif settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing without persistence; data will not be stored")
            store = InMemoryHealthStore()
        else:
            health_db = HealthDatabase(settings.db_path)
            health_db.initialize()
            store = HealthRepository(health_db, encryptor)
            if audit_logger is None:
                audit_logger = AuditLogger(health_db)
            logger.info(
                "Health store initialized: %s (schema v%d)",
                settings.db_path,
                health_db.get_schema_version(),
            )
    else:
        logger.info(
            "No ENCRYPTION_KEY configured; using in-memory store. "
            "Set ENCRYPTION_KEY to persist samples and scores."
        )
        store = InMemoryHealthStore()

    # --- Weights ---
    if advisor_override is not None:
        advisor, provider_name = advisor_override, "override"
    else:
        advisor, provider_name = _build_advisor(settings)

    default_weights = Weights.normalized(
        settings.default_hrv_weight,
        settings.default_sleep_weight,
        settings.default_recovery_weight,
        settings.default_activity_weight,
        reasoning="Default balanced weights",
    )
    resolver = WeightResolver(
        advisor,
        default_weights=default_weights,
        timeout_s=settings.advisory_timeout_seconds,
        cache=TTLCache(settings.advisory_cache_ttl_seconds) if advisor is not None else None,
    )

    pipeline = HealthScoringPipeline(
        metrics=store,
        profiles=store,
        baselines=store,
        sink=store,
        weight_resolver=resolver,
        record_store=store,
        lookback_days=settings.lookback_days,
    )

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "storage": store.data_source,
            "advisory_enabled": resolver.advisory_enabled,
            "llm_provider": provider_name,
            "audit_enabled": audit_logger is not None,
        }

    register_scoring_tools(
        server,
        store,
        pipeline,
        llm_provider=provider_name,
        audit_logger=audit_logger,
    )
    logger.info("Scoring tools registered (storage=%s)", store.data_source)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
