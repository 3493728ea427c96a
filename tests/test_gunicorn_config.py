"""Tests for gunicorn configuration."""
from __future__ import annotations

import importlib.util
import os
from unittest.mock import patch

import pytest


def _load(name: str = "gunicorn_conf"):
    spec = importlib.util.spec_from_file_location(name, "gunicorn.conf.py")
    assert spec is not None
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)  # type: ignore[union-attr]
    return mod


class TestGunicornConfig:
    def test_storefront_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=False):
            for key in ("GUNICORN_BIND", "GUNICORN_TIMEOUT", "GUNICORN_PRELOAD"):
                os.environ.pop(key, None)
            mod = _load()
        assert mod.bind == "0.0.0.0:8000"
        assert mod.proc_name == "storefront"
        assert mod.worker_class == "uvicorn.workers.UvicornWorker"
        assert mod.preload_app is False

    def test_timeout_outlasts_provider_calls(self) -> None:
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("GUNICORN_TIMEOUT", None)
            mod = _load()
        assert mod.timeout == 90
        assert mod.graceful_timeout < mod.timeout

    @pytest.mark.parametrize(
        ("env", "attr", "expected"),
        [
            ("GUNICORN_WORKERS", "workers", 4),
            ("GUNICORN_TIMEOUT", "timeout", 120),
            ("GUNICORN_MAX_REQUESTS", "max_requests", 500),
        ],
    )
    def test_env_override(self, env: str, attr: str, expected: int) -> None:
        with patch.dict(os.environ, {env: str(expected)}):
            mod = _load("gunicorn_conf_custom")
        assert getattr(mod, attr) == expected

    def test_bind_override(self) -> None:
        with patch.dict(os.environ, {"GUNICORN_BIND": "127.0.0.1:9000"}):
            mod = _load("gunicorn_conf_bind")
        assert mod.bind == "127.0.0.1:9000"
