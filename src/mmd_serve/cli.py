"""Serve CLI entry point for mermaid-serve."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

import mmd
from mmd.config import ServeConfig, SourceMode, StalenessPolicy, load_config

app = typer.Typer(
    name="mmd-serve",
    help="Mermaid diagram server - renders PNG/SVG/PDF on demand from .md/.mmd sources.",
    no_args_is_help=False,
    add_completion=False,
)

_stderr_console = Console(stderr=True)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"mmd-serve {mmd.__version__}")
        raise typer.Exit()


def _print_startup_banner(config: ServeConfig, root: Path) -> None:
    """Print startup message to stderr."""
    _stderr_console.print(
        f"[bold cyan]mermaid-serve[/bold cyan] [dim]v{mmd.__version__}[/dim]"
    )
    _stderr_console.print(
        f"Serving [bold]{root}[/bold] on "
        f"http://{config.host}:{config.port}{config.http_root}"
    )
    _stderr_console.print(
        f"[dim]renderer:[/dim] {config.exec}  "
        f"[dim]default size:[/dim] {config.width}x{config.height}  "
        f"[dim]staleness:[/dim] {config.staleness.value}  "
        f"[dim]source:[/dim] {config.source_mode.value}"
    )
    _stderr_console.print("Press [bold yellow]Ctrl+C[/bold yellow] to stop.")


def _fail(message: str) -> typer.Exit:
    _stderr_console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(1)


def build_config(config_path: Path | None, **overrides: object) -> ServeConfig:
    """Load the config file and apply command line overrides.

    Args:
        config_path: Explicit config file, or None for the default lookup
        **overrides: Flag values, None for flags not given

    Returns:
        Validated configuration

    Raises:
        ValueError: If the file or an override is invalid
        FileNotFoundError: If an explicit config file is missing
    """
    return load_config(config_path).with_overrides(**overrides)


@app.command("validate")
def validate(
    config: Path | None = typer.Argument(
        None,
        help="Config file to check (defaults to the normal lookup).",
    ),
) -> None:
    """Validate a configuration file and exit."""
    try:
        loaded = build_config(config)
    except (ValueError, FileNotFoundError) as e:
        raise _fail(str(e)) from None

    root = loaded.resolve_file_root()
    if not root.is_dir():
        raise _fail(f"file_root is not a directory: {root}")

    _stderr_console.print("[green]Configuration is valid.[/green]")


@app.callback(invoke_without_command=True)
def serve(
    ctx: typer.Context,
    _version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to mmd-serve.yaml configuration file.",
        exists=True,
        readable=True,
    ),
    exec_: str | None = typer.Option(
        None, "--exec", help="mermaid-cli executable (and extra args)."
    ),
    width: int | None = typer.Option(None, "--width", help="Default graph width."),
    height: int | None = typer.Option(None, "--height", help="Default graph height."),
    port: int | None = typer.Option(None, "--port", help="HTTP server port."),
    host: str | None = typer.Option(None, "--host", help="HTTP listen address."),
    http_root: str | None = typer.Option(
        None, "--http-root", help="HTTP serving root, e.g. /mermaid/."
    ),
    file_root: str | None = typer.Option(
        None, "--file-root", help="Root path of serving files."
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Renderer deadline in seconds."
    ),
    staleness: StalenessPolicy | None = typer.Option(
        None, "--staleness", help="Cache invalidation policy."
    ),
    source_mode: SourceMode | None = typer.Option(
        None, "--source-mode", help="Where diagram sources live."
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level."),
) -> None:
    """Run the diagram server.

    Examples:
        mmd-serve --file-root docs/ --port 8100
        mmd-serve --exec "mmdc -t dark" --staleness daily
        mmd-serve --config .mermaid-serve/mmd-serve.yaml
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        settings = build_config(
            config,
            exec=exec_,
            width=width,
            height=height,
            port=port,
            host=host,
            http_root=http_root,
            # Flags are relative to the working directory, not the config file
            file_root=str(Path(file_root).resolve()) if file_root else None,
            timeout=timeout,
            staleness=staleness,
            source_mode=source_mode,
            log_level=log_level,
        )
    except (ValueError, FileNotFoundError) as e:
        raise _fail(str(e)) from None

    root = settings.resolve_file_root()
    if not root.is_dir():
        raise _fail(f"file_root is not a directory: {root}")

    # Import here so --help and validate stay fast
    import uvicorn

    from mmd.logging import configure_logging
    from mmd.server import create_app

    configure_logging(settings.log_level)
    _print_startup_banner(settings, root)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=False,
    )


def cli() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    cli()
