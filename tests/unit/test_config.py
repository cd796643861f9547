"""Tests for settings, logging setup and backend wiring."""

import logging

import pytest
from sqlalchemy import inspect

from fundadmin.common.logger import configure_logging, parse_level
from fundadmin.core.config import Settings
from fundadmin.db.session import build_engine, init_db
from fundadmin.services.audit import CompositeAuditSink, LoggingAuditSink
from fundadmin.services.factory import build_audit_sink, build_request_store
from fundadmin.store import InMemoryRequestStore


class TestSettings:
    """Test settings parsing."""

    def test_defaults(self):
        settings = Settings()
        assert settings.store_backend == "memory"
        assert settings.audit_backend == "log"
        assert settings.celery_broker == settings.redis_url

    def test_escalation_tenants_list(self):
        settings = Settings(escalation_tenants="tenant-1, tenant-2,,")
        assert settings.escalation_tenants_list == ["tenant-1", "tenant-2"]

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("STORE_BACKEND", "sql")
        monkeypatch.setenv("CELERY_BROKER_URL", "redis://broker:6379/1")
        settings = Settings()
        assert settings.store_backend == "sql"
        assert settings.celery_broker == "redis://broker:6379/1"


class TestBackendFactory:
    """Test store and audit sink selection."""

    def test_memory_store(self):
        assert isinstance(build_request_store(Settings(store_backend="memory")), InMemoryRequestStore)

    def test_unknown_store(self):
        with pytest.raises(ValueError):
            build_request_store(Settings(store_backend="cassandra"))

    def test_log_audit_sink(self):
        assert isinstance(build_audit_sink(Settings(audit_backend="log")), LoggingAuditSink)

    def test_database_audit_sink(self, monkeypatch):
        monkeypatch.setattr("fundadmin.db.session.init_db", lambda: None)
        sink = build_audit_sink(Settings(audit_backend="database"))
        assert isinstance(sink, CompositeAuditSink)
        assert len(sink.sinks) == 2

    def test_unknown_audit_sink(self):
        with pytest.raises(ValueError):
            build_audit_sink(Settings(audit_backend="carrier-pigeon"))


class TestDatabaseSetup:
    """Test engine creation and table setup."""

    def test_init_db_creates_tables(self):
        engine = build_engine("sqlite://")
        init_db(bind=engine)

        tables = inspect(engine).get_table_names()
        assert "approval_requests" in tables
        assert "audit_logs" in tables
        engine.dispose()


class TestLogger:
    """Test logger configuration."""

    def test_console_logger(self):
        logger = configure_logging(Settings(log_level="debug"), name="fundadmin-test-console")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)

    def test_file_logging(self, tmp_path):
        settings = Settings(file_logging=True, log_dir=str(tmp_path), log_backup_count=2)
        logger = configure_logging(settings, name="fundadmin-test-file", console=False)
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()

        assert "hello" in (tmp_path / "fundadmin-test-file.log").read_text()
        assert logger.handlers[0].backupCount == 2

    def test_reconfigure_updates_level_without_duplicate_handlers(self):
        name = "fundadmin-test-reconfigure"
        configure_logging(Settings(log_level="INFO"), name=name)
        logger = configure_logging(Settings(log_level="ERROR"), name=name)

        assert logger.level == logging.ERROR
        assert len(logger.handlers) == 1

    @pytest.mark.parametrize("level", ["LOUD", "", "basic_format"])
    def test_invalid_level(self, level):
        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging(Settings(log_level=level), name="fundadmin-test-invalid")

    def test_parse_level(self):
        assert parse_level(" warning ") == logging.WARNING
