"""CLI entry point for the disaster relay."""

from __future__ import annotations

import click


def _settings(config: str | None, overrides: dict | None = None):
    from .core.config import load_settings
    from .observability.logger import setup_logging

    settings = load_settings(config_path=config, overrides=overrides)
    setup_logging(
        level=settings.observability.log_level,
        format=settings.observability.log_format,
    )
    return settings


@click.group()
def main() -> None:
    """Disaster Response Relay."""


@main.command()
@click.option("--config", default=None, help="TOML config file path")
@click.option("--host", default=None, help="Bind address override")
@click.option("--port", default=None, type=int, help="Port override")
@click.option("--memory", is_flag=True, help="Use in-memory cache and storage")
def serve(config: str | None, host: str | None, port: int | None, memory: bool) -> None:
    """Serve the HTTP API and the /ws endpoint."""
    import uvicorn

    from .api.app import create_app
    from .context import build_context

    overrides: dict = {}
    if memory:
        overrides["cache"] = {"backend": "memory"}
        overrides["storage"] = {"backend": "memory"}
    settings = _settings(config, overrides)

    app = create_app(build_context(settings))
    uvicorn.run(
        app,
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,  # keep the structlog handlers
    )


if __name__ == "__main__":
    main()
