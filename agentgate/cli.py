import click


@click.group()
def main() -> None:
    """agentgate - Human-gated agent session runtime."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from AGENTGATE_HOST or 127.0.0.1).")
@click.option("--port", default=None, type=int, help="Bind port (default: from AGENTGATE_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the agentgate server."""
    import uvicorn

    from agentgate.agent_runtime.settings import GateSettings

    settings = GateSettings()

    uvicorn.run(
        "agentgate.agent_runtime.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
        # Drain timeout plus a buffer for post-drain cleanup (SSE close).
        timeout_graceful_shutdown=settings.graceful_shutdown_timeout + 10,
    )


@main.command("recent-cwds")
@click.option("--url", default="http://127.0.0.1:8000", help="agentgate service URL.")
@click.option("--limit", default=8, type=int, help="Maximum number of directories.")
def recent_cwds(url: str, limit: int) -> None:
    """Print recently used working directories of a running service."""
    import httpx

    response = httpx.get(f"{url}/api/sessions/recent-cwds", params={"limit": limit})
    response.raise_for_status()
    for cwd in response.json()["cwds"]:
        click.echo(cwd)


if __name__ == "__main__":
    main()
