"""armorlog command line."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .config import ObserverConfig
from .controller import ObserveResult, start_observer
from .errors import ObserverError

load_dotenv()

# Rich styles for status lines on stderr
STATUS_STYLES = {
    "stopped": "#7F848E",
    "shutdown_error": "#E5C07B",
    "error": "#E06C75",
}

# Events go to stdout; status, logging and errors go to stderr
console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="armorlog",
    help="Observe alerts, logs and messages from a KubeArmor relay.",
    epilog=(
        "Examples:\n"
        "  armorlog\n"
        "  armorlog --logFilter all --json\n"
        "  armorlog --namespace kube-system --limit 10\n"
        "  armorlog --grpc localhost:32767 --logPath alerts.log"
    ),
    add_completion=False,
)


def _markup(text: str, color: str) -> str:
    """Wrap text in Rich markup with the given color, escaping special chars."""
    return f"[{color}]{escape(text)}[/{color}]"


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_time=False, show_path=debug)],
        force=True,
    )
    # grpc and kubernetes are chatty at DEBUG
    for name in ("grpc", "kubernetes", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _print_summary(result: ObserveResult) -> None:
    counts = ", ".join(
        f"{watcher.category.value}s: {watcher.forwarded}" for watcher in result.watchers
    ) or "nothing"
    message = f"Stopped ({result.stop_reason}). Forwarded {counts}."
    err_console.print(_markup(message, STATUS_STYLES["stopped"]))
    if result.shutdown_error is not None:
        err_console.print(_markup(str(result.shutdown_error), STATUS_STYLES["shutdown_error"]))


@app.command()
def log(
    grpc: Annotated[
        Optional[str],
        typer.Option("--grpc", "--gRPC", help="gRPC server address (host:port)."),
    ] = None,
    msg_path: Annotated[
        Optional[str],
        typer.Option("--msgPath", help="Output location for messages: path, stdout or none."),
    ] = None,
    log_path: Annotated[
        Optional[str],
        typer.Option("--logPath", help="Output location for alerts and logs: path, stdout or none."),
    ] = None,
    log_filter: Annotated[
        Optional[str],
        typer.Option("--logFilter", help="Which events to receive: policy, system or all."),
    ] = None,
    json_output: Annotated[
        bool, typer.Option("--json", help="Print events as JSON lines.")
    ] = False,
    namespace: Annotated[
        Optional[str], typer.Option("--namespace", help="Namespace regex (case-insensitive).")
    ] = None,
    log_type: Annotated[
        Optional[str],
        typer.Option("--logType", help="Event type regex, e.g. ContainerLog (case-insensitive)."),
    ] = None,
    operation: Annotated[
        Optional[str],
        typer.Option("--operation", help="Operation regex: Process, File, Network (case-insensitive)."),
    ] = None,
    container: Annotated[
        Optional[str], typer.Option("--container", help="Container name regex (case-insensitive).")
    ] = None,
    pod: Annotated[
        Optional[str], typer.Option("--pod", help="Pod name regex (case-insensitive).")
    ] = None,
    source: Annotated[
        Optional[str], typer.Option("--source", help="Source regex (case-sensitive).")
    ] = None,
    resource: Annotated[
        Optional[str], typer.Option("--resource", help="Resource regex (case-sensitive).")
    ] = None,
    limit: Annotated[
        Optional[int],
        typer.Option("--limit", min=0, help="Stop after this many events per category (0 = no limit)."),
    ] = None,
    config_path: Annotated[
        Optional[str], typer.Option("--config", help="Path to a YAML config file.")
    ] = None,
    debug: Annotated[bool, typer.Option("--debug", help="Enable debug logging.")] = False,
) -> None:
    """Stream alerts and logs from the relay until interrupted or the limit is reached."""
    _configure_logging(debug)

    try:
        config = ObserverConfig.load(config_path)
        options = config.to_options(
            grpc=grpc,
            msg_path=msg_path,
            log_path=log_path,
            log_filter=log_filter,
            json_output=True if json_output else None,
            namespace=namespace,
            log_type=log_type,
            operation=operation,
            container_name=container,
            pod_name=pod,
            source=source,
            resource=resource,
            limit=limit,
        )
        result = asyncio.run(start_observer(options, console=console))
    except ObserverError as exc:
        err_console.print(_markup(str(exc), STATUS_STYLES["error"]))
        raise typer.Exit(1) from exc
    except KeyboardInterrupt:
        err_console.print(_markup("Stopped.", STATUS_STYLES["stopped"]))
        return

    _print_summary(result)
