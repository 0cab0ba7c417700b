"""Environment-specific startup checks in create_app."""

import pytest

from tracker import create_app
from tracker.config import ProductionConfig, TestingConfig


class TestProductionStartup:
    def test_refuses_without_secret_key(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "sqlite://")
        monkeypatch.setattr(ProductionConfig, "SECRET_KEY", None)
        with pytest.raises(RuntimeError, match="SECRET_KEY"):
            create_app("production")

    def test_refuses_generated_fallback_key(self, monkeypatch):
        import importlib

        config_module = importlib.import_module("tracker.config")

        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "sqlite://")
        monkeypatch.setattr(ProductionConfig, "SECRET_KEY", config_module._DEV_SECRET)
        with pytest.raises(RuntimeError, match="SECRET_KEY"):
            create_app("production")

    def test_refuses_without_database_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        monkeypatch.setattr(ProductionConfig, "SECRET_KEY", "a-stable-production-secret-key-value")
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            create_app("production")


def test_other_environments_have_no_startup_requirements():
    assert TestingConfig.check() is None
