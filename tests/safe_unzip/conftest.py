"""Shared pytest fixtures for the SafeUnzip test-suite."""

from __future__ import annotations

import logging
import os

import pytest

from SafeUnzip.settings import ExtractionSettings, invalidate_default_settings


@pytest.fixture(autouse=True)
def _isolate_default_settings(monkeypatch):
    """Keep SAFEUNZIP_* variables and the settings cache out of each test."""

    for key in list(os.environ):
        if key.startswith("SAFEUNZIP_"):
            monkeypatch.delenv(key, raising=False)
    invalidate_default_settings()
    yield
    invalidate_default_settings()


@pytest.fixture
def fast_settings() -> ExtractionSettings:
    """Multi-worker settings without fsync."""
    return ExtractionSettings(max_workers=8, fsync=False)


@pytest.fixture
def inline_settings() -> ExtractionSettings:
    """Single-worker settings; entries run in catalog order on the caller."""
    return ExtractionSettings(max_workers=1, fsync=False)


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Drop handlers installed by setup_logging so they never outlive a test."""

    yield
    logger = logging.getLogger("SafeUnzip")
    for handler in list(logger.handlers):
        if getattr(handler, "_safeunzip_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
