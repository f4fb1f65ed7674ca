"""Shared test fixtures for VitalScore tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "none")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DB_PATH", ":memory:")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from vitalscore.domains.health.domain_logic.score_models import UserProfile  # noqa: E402


@pytest.fixture
def male_45() -> UserProfile:
    return UserProfile(age=45, sex="male")


@pytest.fixture
def female_30() -> UserProfile:
    return UserProfile(age=30, sex="female")


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def memory_store():
    from vitalscore.domains.health.connectors.memory import InMemoryHealthStore

    return InMemoryHealthStore()


@pytest.fixture
def health_db():
    """Create an in-memory HealthDatabase for testing."""
    from vitalscore.core.storage.database import HealthDatabase

    db = HealthDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from vitalscore.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def health_repository(health_db, field_encryptor):
    """Create a HealthRepository backed by in-memory SQLite."""
    from vitalscore.core.storage.repository import HealthRepository

    return HealthRepository(health_db, field_encryptor)


@pytest.fixture
def audit_logger(health_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from vitalscore.core.audit.logger import AuditLogger

    return AuditLogger(health_db)
