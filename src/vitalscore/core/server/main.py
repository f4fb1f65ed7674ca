"""Run the VitalScore scoring server over Streamable HTTP.

Usage: ``python -m vitalscore.core.server.main`` or the ``vitalscore-server``
console script. Configuration comes from the environment; see
``vitalscore.core.config.settings``.
"""

from __future__ import annotations

import logging
from ipaddress import ip_address

from vitalscore.core.config.settings import Settings, get_settings
from vitalscore.core.server.app import SERVER_VERSION, create_app

logger = logging.getLogger(__name__)


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def ensure_safe_bind(settings: Settings) -> None:
    """Reject a public bind address unless explicitly allowed.

    Raises:
        RuntimeError: If the host is not loopback and
            ``VITALSCORE_ALLOW_INSECURE_BIND`` is off.
    """
    if settings.vitalscore_allow_insecure_bind or _is_loopback_host(settings.vitalscore_host):
        return
    raise RuntimeError(
        f"VitalScore serves health records without authentication; refusing to bind "
        f"{settings.vitalscore_host}. Set VITALSCORE_ALLOW_INSECURE_BIND=true to override."
    )


def startup_summary(settings: Settings) -> dict[str, str]:
    """Describe the configured store, advisory and scoring window.

    Mirrors what ``create_app`` will try to build. A bad encryption key is
    only detected there, which then falls back to the in-memory store.
    """
    if settings.encryption_key:
        store = f"encrypted sqlite ({settings.db_path})"
    else:
        store = "in-memory (no ENCRYPTION_KEY, results are lost on exit)"

    api_keys = {"anthropic": settings.anthropic_api_key, "openai": settings.openai_api_key}
    if settings.llm_provider == "none":
        advisory = "off (default weights)"
    elif settings.llm_provider in api_keys and not api_keys[settings.llm_provider]:
        advisory = f"off ({settings.llm_provider} has no API key)"
    else:
        advisory = (
            f"{settings.llm_provider}, timeout {settings.advisory_timeout_seconds:g}s, "
            f"cache ttl {settings.advisory_cache_ttl_seconds:g}s"
        )

    return {
        "store": store,
        "advisory": advisory,
        "lookback": f"{settings.lookback_days} days",
    }


def run() -> None:
    """Configure logging, check the bind address and serve scoring tools."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.vitalscore_log_level.upper(), logging.INFO)
    )
    ensure_safe_bind(settings)

    summary = startup_summary(settings)
    logger.info(
        "VitalScore %s scoring on http://%s:%d (lookback %s)",
        SERVER_VERSION,
        settings.vitalscore_host,
        settings.vitalscore_port,
        summary["lookback"],
    )
    logger.info("Result store: %s", summary["store"])
    logger.info("Weight advisory: %s", summary["advisory"])

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.vitalscore_host,
        port=settings.vitalscore_port,
    )


if __name__ == "__main__":
    run()
