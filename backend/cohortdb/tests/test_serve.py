from __future__ import annotations

import pytest

from cohortdb import serve


def _capture_run(monkeypatch):
    calls = []
    monkeypatch.setattr(serve.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    return calls


def test_main_reads_flags_over_environment(monkeypatch):
    monkeypatch.setenv("PORT", "8000")
    monkeypatch.delenv("SSL_CERTFILE", raising=False)
    monkeypatch.delenv("SSL_KEYFILE", raising=False)
    calls = _capture_run(monkeypatch)

    serve.main(["--port", "9100", "--reload", "--certfile", "", "--keyfile", ""])

    app, kwargs = calls[0]
    assert app == "cohortdb.main:app"
    assert kwargs["port"] == 9100
    assert kwargs["reload"] is True
    assert "ssl_certfile" not in kwargs


def test_main_passes_tls_files(monkeypatch):
    calls = _capture_run(monkeypatch)

    serve.main(["--certfile", "/etc/tls/cert.pem", "--keyfile", "/etc/tls/key.pem"])

    _, kwargs = calls[0]
    assert kwargs["ssl_certfile"] == "/etc/tls/cert.pem"
    assert kwargs["ssl_keyfile"] == "/etc/tls/key.pem"


def test_half_configured_tls_is_refused(monkeypatch):
    calls = _capture_run(monkeypatch)

    with pytest.raises(SystemExit):
        serve.main(["--certfile", "/etc/tls/cert.pem", "--keyfile", ""])
    assert calls == []
