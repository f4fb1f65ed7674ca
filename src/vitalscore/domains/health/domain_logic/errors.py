"""Domain error taxonomy for the scoring pipeline.

Only ``PreconditionError`` and ``NoDataError`` reach callers. The other two
are raised and recovered inside their component.
"""

from __future__ import annotations


class VitalScoreError(Exception):
    """Base class for scoring pipeline errors."""


class PreconditionError(VitalScoreError):
    """Missing profile or age; the run cannot start."""


class NoDataError(VitalScoreError):
    """No metric sample exists for the target date."""


class AdvisoryUnavailableError(VitalScoreError):
    """The weight advisory collaborator failed, timed out or answered garbage."""


class DegenerateBaselineError(VitalScoreError):
    """A baseline has zero (or negative) variance and cannot produce a z-score."""
