import typer
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from scanimg.config.loader import load_config
from scanimg.config.models import AppConfig
from scanimg.infrastructure.logging import setup_logging
from scanimg.infrastructure.event_bus import EventBus
from scanimg.infrastructure.file_scanner import FileScanner
from scanimg.infrastructure.file_probe import LocalProber
from scanimg.infrastructure.http_probe import RemoteProber, build_session
from scanimg.pipeline.collector import ReferenceCollector
from scanimg.pipeline.orchestrator import ScanOrchestrator
from scanimg.ui.progress import ProbeProgress
from scanimg.ui.report import render_json, render_table

app = typer.Typer(help="scanimg - find image references and report their size and resolution")


def _dedupe(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


@app.command()
def scan(
    dirs: Optional[List[Path]] = typer.Option(
        None,
        "--dir",
        "-d",
        help="Directory or file to scan (repeatable; defaults to config input_dirs or '.')",
    ),
    timeout: Optional[int] = typer.Option(None, "--timeout", min=1, help="Per-request timeout in milliseconds"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-j", min=1, help="Maximum probes in flight"),
    ignore: Optional[List[str]] = typer.Option(
        None,
        "--ignore",
        help="Extra directory name to skip during traversal (repeatable)",
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    output_format: Optional[str] = typer.Option(None, "--format", "-f", help="Report format (table, json)"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    no_progress: bool = typer.Option(False, "--no-progress", help="Disable the progress spinner"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Inspect every image referenced under the given paths."""
    progress = None
    session = None
    try:
        config = load_config(config_path)
        # Apply CLI overrides
        if timeout is not None: config.general.timeout_ms = timeout
        if concurrency is not None: config.general.concurrency = concurrency
        if ignore: config.general.ignored_dirs = _dedupe(config.general.ignored_dirs + list(ignore))
        if output_format is not None: config.ui.output_format = output_format
        if log_path is not None: config.general.log_path = str(log_path)
        if no_progress: config.ui.progress = False
        if debug: config.general.debug = True
        # Re-run validators on the overridden values
        config = AppConfig.model_validate(config.model_dump())

        if dirs:
            input_paths = [Path(p) for p in _dedupe([str(d) for d in dirs])]
        elif config.input_dirs:
            input_paths = [Path(p) for p in _dedupe(config.input_dirs)]
        else:
            input_paths = [Path(".")]

        log_path_value = Path(config.general.log_path) if config.general.log_path else None
        logger = setup_logging(debug=config.general.debug, log_path=log_path_value)
        logger.info(f"scanimg started: paths={[str(p) for p in input_paths]}")
        logger.info(
            f"Config: timeout_ms={config.general.timeout_ms}, concurrency={config.general.concurrency}, "
            f"ignored_dirs={config.general.ignored_dirs}, format={config.ui.output_format}, debug={config.general.debug}"
        )

        bus = EventBus()
        if config.ui.progress:
            progress = ProbeProgress(bus, Console(stderr=True))

        cwd = Path.cwd()
        session = build_session(config.general.concurrency, config.general.user_agent)
        orchestrator = ScanOrchestrator(
            config=config,
            event_bus=bus,
            collector=ReferenceCollector(FileScanner(config.general.ignored_dirs), cwd=cwd),
            remote_prober=RemoteProber(session, config.general.timeout_ms),
            local_prober=LocalProber(cwd=cwd),
        )

        rows = orchestrator.run(input_paths)
        if progress:
            progress.stop()

        if not rows:
            typer.echo("No images found within the provided paths.")
            return

        if config.ui.output_format == "json":
            typer.echo(render_json(rows))
        else:
            render_table(rows, Console())

    except KeyboardInterrupt:
        if progress:
            progress.stop()
        typer.secho("\nScan stopped by user (Ctrl+C)", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except Exception as e:
        if progress:
            progress.stop()
        typer.secho(f"Execution failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    finally:
        if session is not None:
            session.close()


if __name__ == "__main__":
    app()
