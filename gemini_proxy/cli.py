"""CLI entry point.

`gemini-proxy` starts the proxy server. Command-line options override the
environment / .env, which override the built-in defaults.
"""

from typing import Annotated, Any, Optional

import typer

from gemini_proxy import __version__
from gemini_proxy.config import get_settings

app = typer.Typer(
    name="gemini-proxy",
    help="OpenAI-compatible API proxy for Google Gemini",
    add_completion=False,
)

SESSION_MODES = ("per_request", "shared")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"gemini-proxy {__version__}")
        raise typer.Exit()


def _validate_session_mode(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in SESSION_MODES:
        raise typer.BadParameter(f"must be one of: {', '.join(SESSION_MODES)}")
    return value


@app.command()
def serve(
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to listen on"),
    ] = None,
    host: Annotated[
        Optional[str],
        typer.Option("--host", "-H", help="Host to bind to"),
    ] = None,
    cors_origins: Annotated[
        Optional[str],
        typer.Option("--cors-origins", help='Allowed CORS origins, "*" or comma-separated'),
    ] = None,
    working_dir: Annotated[
        Optional[str],
        typer.Option("--working-dir", "-w", help="Working directory attached to sessions"),
    ] = None,
    include_thinking: Annotated[
        Optional[bool],
        typer.Option(
            "--include-thinking/--no-include-thinking",
            help="Surface model reasoning as reasoning_content",
        ),
    ] = None,
    session_mode: Annotated[
        Optional[str],
        typer.Option(
            "--session-mode",
            help="per_request or shared",
            callback=_validate_session_mode,
        ),
    ] = None,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Start the proxy server.

    Runs the FastAPI application with uvicorn.
    """
    import uvicorn

    from gemini_proxy.main import create_app

    overrides: dict[str, Any] = {
        "PORT": port,
        "HOST": host,
        "CORS_ORIGINS": cors_origins,
        "WORKING_DIR": working_dir,
        "INCLUDE_THINKING": include_thinking,
        "SESSION_MODE": session_mode,
    }
    settings = get_settings().model_copy(
        update={key: value for key, value in overrides.items() if value is not None}
    )

    typer.echo(f"Starting {settings.APP_NAME} on http://{settings.HOST}:{settings.PORT}")
    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    app()
