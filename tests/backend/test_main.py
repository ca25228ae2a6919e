import runpy

import pytest
import uvicorn

from backend.core import config


def test_running_module_serves_app_with_uvicorn(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []
    monkeypatch.setattr(uvicorn, 'run', lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.setattr(config, 'APP_HOST', '0.0.0.0')
    monkeypatch.setattr(config, 'APP_PORT', 9100)
    monkeypatch.setattr(config, 'APP_ENV', 'production')

    runpy.run_module('backend.main', run_name='__main__')

    assert calls == [('backend.main:app', {'host': '0.0.0.0', 'port': 9100, 'reload': False})]
