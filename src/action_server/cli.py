"""CLI entrypoint for the action server."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import rich_click as click
from pydantic import ValidationError

from action_server import __version__
from action_server.exceptions import ConfigurationError
from action_server.service.config import ServiceConfig


def _load_config(**overrides) -> ServiceConfig:
    """Environment/.env first, then any explicitly passed CLI options."""
    config = ServiceConfig()
    updates = {key: value for key, value in overrides.items() if value is not None}
    if updates:
        config = ServiceConfig(**{**config.model_dump(), **updates})
    return config


@click.group()
@click.version_option(version=__version__, prog_name="action-server")
def main() -> None:
    """Local action server CLI."""


@main.command()
@click.option("--port", "-p", type=int, default=None, help="Listen port (env PORT, default 3000).")
@click.option("--host", "-h", default=None, help="Listen address (env HOST, default 127.0.0.1).")
@click.option(
    "--max-concurrent",
    type=int,
    default=None,
    help="Tool runs allowed at once (env MAX_CONCURRENT_REQUESTS, default 5).",
)
@click.option(
    "--request-timeout",
    type=int,
    default=None,
    help="Per-run deadline in milliseconds (env REQUEST_TIMEOUT, default 30000).",
)
def serve(
    port: Optional[int],
    host: Optional[str],
    max_concurrent: Optional[int],
    request_timeout: Optional[int],
) -> None:
    """Start the HTTP server."""
    import uvicorn

    from action_server.sandbox.runner import ActionRunner
    from action_server.service.app import create_app

    try:
        config = _load_config(
            port=port,
            host=host,
            max_concurrent_requests=max_concurrent,
            request_timeout=request_timeout,
        )
        runner = ActionRunner(config.to_sandbox_config())
    except ValidationError as exc:
        raise click.UsageError(str(exc)) from exc
    except ConfigurationError as exc:
        raise click.UsageError(exc.message) from exc

    click.echo(f"Local Action Server running at http://{config.host}:{config.port}")
    click.echo(f"API Documentation available at http://{config.host}:{config.port}/docs")

    uvicorn.run(
        create_app(config, runner=runner),
        host=config.host,
        port=config.port,
        log_config=None,
    )


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the document here instead of stdout.",
)
def openapi(output: Optional[Path]) -> None:
    """Print the OpenAPI document."""
    from action_server.service.app import create_app

    document = json.dumps(create_app(configure_logging=False).openapi(), indent=2)
    if output is None:
        click.echo(document)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(document + "\n", encoding="utf-8")
    click.echo(f"OpenAPI document written to {output}")


if __name__ == "__main__":
    main()
