import pytest
from typer.testing import CliRunner

from gemini_proxy import __version__
from gemini_proxy.cli import app

runner = CliRunner()


@pytest.fixture
def launched(monkeypatch, settings_factory):
    """Capture what `serve` would hand to uvicorn instead of starting a server."""
    captured = {}

    def fake_create_app(settings):
        captured["settings"] = settings
        return "asgi-app"

    def fake_run(asgi_app, **kwargs):
        captured["app"] = asgi_app
        captured["run_kwargs"] = kwargs

    monkeypatch.setattr("gemini_proxy.cli.get_settings", lambda: settings_factory())
    monkeypatch.setattr("gemini_proxy.main.create_app", fake_create_app)
    monkeypatch.setattr("uvicorn.run", fake_run)
    return captured


def test_defaults(launched):
    result = runner.invoke(app, [])

    assert result.exit_code == 0, result.output
    assert launched["app"] == "asgi-app"
    assert launched["run_kwargs"] == {"host": "0.0.0.0", "port": 3000, "log_config": None}
    assert launched["settings"].SESSION_MODE == "per_request"


def test_options_override_settings(launched):
    result = runner.invoke(
        app,
        [
            "--port", "8080",
            "--host", "127.0.0.1",
            "--session-mode", "shared",
            "--no-include-thinking",
            "--cors-origins", "http://a.test,http://b.test",
            "-w", "/tmp/work",
        ],
    )

    assert result.exit_code == 0, result.output
    settings = launched["settings"]
    assert settings.PORT == 8080
    assert settings.HOST == "127.0.0.1"
    assert settings.SESSION_MODE == "shared"
    assert settings.INCLUDE_THINKING is False
    assert settings.WORKING_DIR == "/tmp/work"
    assert settings.cors_origin_list == ["http://a.test", "http://b.test"]
    assert launched["run_kwargs"]["port"] == 8080
    assert "http://127.0.0.1:8080" in result.output


def test_invalid_session_mode(launched):
    result = runner.invoke(app, ["--session-mode", "pooled"])

    assert result.exit_code != 0
    assert "app" not in launched


def test_version(launched):
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"gemini-proxy {__version__}" in result.output
    assert "app" not in launched
