"""Weight resolution: default table or advisory suggestion, never an error."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta
from typing import Iterable

from vitalscore.core.cache.ttl import ResultCache
from vitalscore.domains.health.connectors import AdvisoryRequest, AdvisoryResult, WeightAdvisor
from vitalscore.domains.health.domain_logic.normalizer import require_age
from vitalscore.domains.health.domain_logic.score_models import (
    DEFAULT_WEIGHTS,
    MetricSample,
    UserProfile,
    Weights,
)

logger = logging.getLogger(__name__)

SUFFICIENCY_WINDOW_DAYS = 7
SUFFICIENCY_MIN_DAYS = 3

NOT_CONFIGURED_REASONING = "Default weights (advisory not configured)"
FALLBACK_REASONING = "Default balanced weights (advisory unavailable: {reason})"


def _has_metric(sample: MetricSample, metric: str) -> bool:
    if metric == "hrv":
        return sample.hrv is not None
    if metric == "sleep":
        return sample.deep_sleep_minutes is not None or sample.sleep_score is not None
    if metric == "recovery":
        return sample.recovery_score is not None
    if metric == "activity":
        return sample.steps is not None
    raise ValueError(f"Unknown component: {metric!r}")


def data_sufficiency(
    samples: Iterable[MetricSample], *, as_of: date | None = None
) -> dict[str, bool]:
    """Per-component flag: at least 3 of the last 7 days have a value.

    The window is the 7 calendar days ending at ``as_of`` (default: the most
    recent sample date). Several sources on one day count once.
    """
    samples = list(samples)
    flags = {metric: False for metric in ("hrv", "sleep", "recovery", "activity")}
    if not samples:
        return flags

    end = as_of or max(s.date for s in samples)
    start = end - timedelta(days=SUFFICIENCY_WINDOW_DAYS - 1)
    window = [s for s in samples if start <= s.date <= end]

    for metric in flags:
        days = {s.date for s in window if _has_metric(s, metric)}
        flags[metric] = len(days) >= SUFFICIENCY_MIN_DAYS
    return flags


class WeightResolver:
    """Resolves component weights for one scoring run.

    Usage::

        resolver = WeightResolver(advisor=LLMWeightAdvisor(client), timeout_s=5.0)
        weights = await resolver.resolve_weights(profile, recent_samples)
    """

    def __init__(
        self,
        advisor: WeightAdvisor | None = None,
        *,
        default_weights: Weights = DEFAULT_WEIGHTS,
        timeout_s: float = 5.0,
        cache: ResultCache | None = None,
    ) -> None:
        self._advisor = advisor
        self._defaults = Weights.normalized(
            *default_weights.as_list(),
            reasoning=default_weights.reasoning,
            source="default",
        )
        self._timeout_s = timeout_s
        self._cache = cache

    @property
    def advisory_enabled(self) -> bool:
        return self._advisor is not None

    @property
    def default_weights(self) -> Weights:
        return self._defaults

    def build_request(
        self,
        profile: UserProfile,
        recent_samples: Iterable[MetricSample],
        *,
        as_of: date | None = None,
    ) -> AdvisoryRequest:
        return AdvisoryRequest(
            age=require_age(profile),
            conditions=tuple(profile.condition_labels()),
            sufficiency=data_sufficiency(recent_samples, as_of=as_of),
        )

    async def resolve_weights(
        self,
        profile: UserProfile,
        recent_samples: Iterable[MetricSample],
        *,
        as_of: date | None = None,
    ) -> Weights:
        """Return weights summing to 1.0.

        Raises:
            PreconditionError: If the profile has no age.
        """
        request = self.build_request(profile, recent_samples, as_of=as_of)

        if self._advisor is None:
            return self._defaults.with_source("default", NOT_CONFIGURED_REASONING)

        if self._cache is not None:
            cached = self._cache.get(request.cache_key())
            if cached is not None:
                # Cached weights keep their advisory source so reruns are identical.
                logger.debug("Advisory weights served from cache")
                return cached

        try:
            result = await asyncio.wait_for(
                self._advisor.suggest_weights(request), timeout=self._timeout_s
            )
            weights = self._from_advisory(result)
        except asyncio.TimeoutError:
            logger.warning("Weight advisory timed out after %.1fs; using defaults", self._timeout_s)
            return self._fallback("timeout")
        except ValueError as exc:
            logger.warning("Weight advisory returned unusable weights: %s", exc)
            return self._fallback("malformed response")
        except Exception as exc:
            # AdvisoryUnavailableError and anything an advisor leaks past it.
            logger.warning("Weight advisory failed (%s); using defaults", type(exc).__name__)
            return self._fallback(type(exc).__name__)

        if self._cache is not None:
            self._cache.set(request.cache_key(), weights)
        return weights

    def _from_advisory(self, result: AdvisoryResult) -> Weights:
        if not isinstance(result, AdvisoryResult):
            raise ValueError(f"Expected AdvisoryResult, got {type(result).__name__}")
        return Weights.normalized(
            result.hrv_weight,
            result.sleep_weight,
            result.recovery_weight,
            result.activity_weight,
            reasoning=result.reasoning,
            source="advisory",
        )

    def _fallback(self, reason: str) -> Weights:
        return self._defaults.with_source("fallback", FALLBACK_REASONING.format(reason=reason))
