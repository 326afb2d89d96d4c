"""Tests ensuring observability wiring is safe by default."""
from __future__ import annotations

import importlib


def test_app_import_succeeds_when_opik_is_disabled(monkeypatch) -> None:
    monkeypatch.setenv("OPIK_ENABLED", "false")
    monkeypatch.delenv("OPIK_API_KEY", raising=False)

    import goalcal.core.config as core_config
    import goalcal.observability.tracing as tracing_module

    importlib.reload(core_config)
    importlib.reload(tracing_module)
    tracing_module.reset_client()

    assert tracing_module.get_opik_client() is None


def test_missing_api_key_disables_tracing(monkeypatch) -> None:
    import goalcal.observability.tracing as tracing_module

    monkeypatch.setattr(tracing_module.settings, "opik_enabled", True)
    monkeypatch.setattr(tracing_module.settings, "opik_api_key", None)
    tracing_module.reset_client()

    try:
        assert tracing_module.get_opik_client() is None
    finally:
        tracing_module.reset_client()
