import json
import logging
from collections.abc import Callable
from typing import Any

import typer
import yaml

from .core.config import MeshHubConfig, ensure_config, load_config
from .core.errors import ClientError, QuotaExceeded
from .core.message import M, emit, emit_block, set_enabled
from .core.tasks import COMPLIANCE_AUDIT, Task
from .infrastructure import MeshHub, build_client

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="MeshHub client: tasks, live events and compliance chat.")

ERROR_MAX_CHARS = 500  # error bodies can be whole HTML pages
EVENT_MAX_LINES = 40

_config_path: str | None = None
_site_config: str | None = None
_base_url: str = ""
_client: MeshHub | None = None


@app.callback()
def _global_options(
    config: str = typer.Option("", "--config", help="Path to config.yaml (default ~/.meshhub/config.yaml)"),
    site_config: str = typer.Option("", "--site-config", help="Static site config JSON with API_BASE"),
    base_url: str = typer.Option("", "--base-url", help="Backend base URL override"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress progress messages"),
) -> None:
    global _config_path, _site_config, _base_url, _client
    _config_path = config or None
    _site_config = site_config or None
    _base_url = base_url
    _client = None
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    set_enabled(not quiet)


def _resolve_config() -> MeshHubConfig:
    ensure_config(_config_path)
    cfg = load_config(force_reload=True, config_path=_config_path, site_config=_site_config)
    if _base_url:
        cfg.api.base_url = _base_url.rstrip("/")
    return cfg


def _get_client() -> MeshHub:
    global _client
    if _client is None:
        _client = build_client(_resolve_config())
    return _client


def _fail(e: ClientError, code: M = M.SERR) -> None:
    emit(code, f"Error: {e}", truncate=ERROR_MAX_CHARS)
    raise typer.Exit(1)


def _emit_json(code: M, label: str, payload: Any, max_lines: int = 0) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False) if not isinstance(payload, str) else payload
    emit_block(code, label, text, max_lines=max_lines)


def _event_printer(task_id: str) -> Callable[[Any], None]:
    def _print(msg: Any) -> None:
        _emit_json(M.EMSG, f"event {task_id}", msg, max_lines=EVENT_MAX_LINES)

    return _print


def _parse_fields(fields: list[str]) -> dict[str, str]:
    data: dict[str, str] = {}
    for item in fields:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got {item!r}", param_hint="--field")
        data[key.strip()] = value
    return data


# ── CLI Commands ─────────────────────────────────────────────────────────


@app.command()
def token() -> None:
    """Acquire (or reuse) an anonymous access token."""
    client = _get_client()
    try:
        credential = client.tokens.ensure_token()
    except ClientError as e:
        _fail(e, M.AERR)
        return
    if credential.expires_at > 0:
        emit(M.AAUT, f"Token ready, expires in {credential.expires_in_seconds:.0f}s")
    else:
        emit(M.AAUT, "Token ready (no expiry announced)")


@app.command()
def health() -> None:
    """Probe the backend health endpoint."""
    status = _get_client().public.health()
    _emit_json(M.SINF, "health", status)


@app.command()
def invoke(prompt: str = typer.Argument("Hello MeshHubOS Lite")) -> None:
    """Run the ProtoKernel demo agent."""
    out = _get_client().agents.run_demo({"prompt": prompt})
    _emit_json(M.CRES, "agent", out)
    if "error" in out:
        raise typer.Exit(1)


@app.command()
def audit(
    field: list[str] | None = typer.Option(None, "--field", "-f", help="Form field as key=value (repeatable)"),
    kind: str = typer.Option(COMPLIANCE_AUDIT, "--kind", help="Task kind"),
    watch: bool = typer.Option(False, "--watch", "-w", help="Stream live task events while polling"),
) -> None:
    """Queue a task and wait for its result."""
    client = _get_client()
    data = _parse_fields(field or [])

    def _on_poll(attempt: int, task: Task) -> None:
        emit(M.TPOL, f"poll {attempt}/{client.tasks.max_attempts}: {task.status.value}")

    handle = None
    try:
        emit(M.TSUB, "Queuing task…")
        task_id = client.tasks.submit(kind, data)
        emit(M.TSUB, f"Task {task_id} queued")
        if watch:
            handle = client.events.subscribe(task_id, _event_printer(task_id))
        result = client.tasks.await_task(task_id, on_poll=_on_poll)
    except ClientError as e:
        emit(M.TFAL, f"Error: {e}", truncate=ERROR_MAX_CHARS)
        raise typer.Exit(1)
    finally:
        if handle is not None:
            handle.cancel()

    emit(M.TDNE, f"Task {result.id} done")
    _emit_json(M.CRES, "result", result.to_dict())


@app.command()
def events(
    task_id: str,
    timeout: float = typer.Option(0.0, "--timeout", help="Stop after N seconds (0 = until closed)"),
) -> None:
    """Stream live events for a task until the server closes the channel."""
    client = _get_client()
    try:
        client.tokens.ensure_token()
    except ClientError as e:
        _fail(e, M.AERR)
        return

    handle = client.events.subscribe(task_id, _event_printer(task_id))
    if handle is None:
        emit(M.SERR, "No access token available for the event stream.")
        raise typer.Exit(1)

    emit(M.EOPN, f"Listening for events on task {task_id}. Press Ctrl+C to stop.")
    try:
        handle.wait(timeout or None)
    except KeyboardInterrupt:
        pass
    finally:
        handle.cancel()

    if handle.error is not None:
        emit(M.ECLS, f"Stream closed after error: {handle.error}")
    else:
        emit(M.ECLS, f"Stream closed ({handle.messages_received} messages)")


@app.command()
def ask(message: str) -> None:
    """Ask the compliance assistant a question (counts against the daily quota)."""
    client = _get_client()
    question = message.strip()
    if not question:
        raise typer.BadParameter("message must not be empty")

    emit(M.UASK, question)
    try:
        out = client.chat.ask(question)
    except QuotaExceeded as e:
        emit(M.QUPG, f"{e}. {e.upgrade_hint}")
        raise typer.Exit(1)
    except ClientError as e:
        _fail(e)
        return
    finally:
        emit(M.QCNT, client.quota.counter_text())

    emit(M.UANS, out.reply or "(No reply)")


@app.command()
def quota() -> None:
    """Show today's remaining free questions and the current thread."""
    client = _get_client()
    emit(M.QCNT, client.quota.counter_text())
    thread_id = client.quota.get_thread()
    emit(M.SINF, f"thread: {thread_id or '(none)'}")


@app.command(name="clear-chat")
def clear_chat() -> None:
    """Forget the conversation thread (the quota counter is kept)."""
    _get_client().chat.clear()
    emit(M.SINF, "Chat cleared. Ask another compliance question.")


@app.command(name="config")
def show_config() -> None:
    """Print the resolved configuration."""
    cfg = _resolve_config()
    emit_block(M.SCFG, "config", yaml.dump(cfg.model_dump(), default_flow_style=False, sort_keys=False))


if __name__ == "__main__":
    app()
