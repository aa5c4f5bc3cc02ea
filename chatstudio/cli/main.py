"""
CLI entry point for chatstudio: multi-provider chat with conversation memory.
"""

import json
import logging
import mimetypes
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

try:
    from importlib.metadata import version as pkg_version

    _version = pkg_version("chatstudio")
except Exception:
    _version = "0.3.0"

from chatstudio.core.attachments import TEXT_EXTENSIONS
from chatstudio.core.chat import ChatService
from chatstudio.core.config import ConfigManager, SettingsError, load_settings
from chatstudio.core.errors import (
    GenerationFailedError,
    InvalidRequestError,
    MissingCredentialError,
)
from chatstudio.models.request import Attachment, GenerationRequest, ImageRequest

console = Console()
console_err = Console(stderr=True)

EXIT_COMMANDS = {"/exit", "/quit", "exit", "quit"}


def _fail(message: str) -> None:
    console_err.print(f"[red]Error:[/red] {message}")
    sys.exit(1)


def _settings(ctx: click.Context):
    if "settings" not in ctx.obj:
        try:
            ctx.obj["settings"] = load_settings(ctx.obj.get("settings_path"))
        except SettingsError as e:
            _fail(str(e))
    return ctx.obj["settings"]


def _service(ctx: click.Context) -> ChatService:
    if "service" not in ctx.obj:
        service = ChatService.from_settings(_settings(ctx))
        ctx.obj["service"] = service
        ctx.call_on_close(service.close)
    return ctx.obj["service"]


def _read_attachment(path: Path) -> Attachment:
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    content = None
    if mime_type.startswith("text/") or path.suffix.lower() in TEXT_EXTENSIONS:
        content = path.read_text(errors="replace")
    return Attachment(name=path.name, mime_type=mime_type, size=path.stat().st_size, text_content=content)


# =============================================================================
# Root CLI Group
# =============================================================================


@click.group()
@click.version_option(version=_version, prog_name="chatstudio")
@click.option("--debug", is_flag=True, hidden=True, help="Enable debug logging")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: ~/.chatstudio/settings.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, settings_path: Path | None):
    """
    Chatstudio: chat with many AI providers, with memory.

    \b
        chatstudio chat "hello"          # One-shot message
        chatstudio chat                  # Interactive session
        chatstudio providers             # List built-in providers
        chatstudio image "a red fox"     # Generate an image
        chatstudio serve                 # Start the HTTP API
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["settings_path"] = settings_path

    if debug:
        logging.basicConfig(level=logging.DEBUG, format="[%(levelname)s] %(name)s: %(message)s")
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Chat Commands
# =============================================================================


def _send(ctx: click.Context, request: GenerationRequest, raw: bool) -> str:
    """Send one message and print the reply. Returns the session id."""
    with console.status("[dim]Thinking...[/dim]"):
        result = _service(ctx).generate(request, _settings(ctx).catalog())

    if result.degraded:
        console.print(f"[yellow]Answered by fallback provider '{result.provider_id}'[/yellow]")
    if raw:
        click.echo(result.content)
    else:
        console.print(Markdown(result.content))
    return result.session_id


@cli.command()
@click.argument("prompt", required=False)
@click.option("--session", "-s", "session_id", default=None, help="Session to continue")
@click.option("--provider", "-p", "provider_id", default=None, help="Provider id (default: pollinations)")
@click.option("--model", "-m", default=None, help="Model name or alias")
@click.option("--file", "-f", "files", multiple=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--temperature", "-t", type=float, default=None)
@click.option("--max-tokens", type=int, default=None)
@click.option("--seed", default=None)
@click.option("--api-key", default=None, help="Key for this request only")
@click.option("--raw", is_flag=True, help="Print the reply without markdown rendering")
@click.pass_context
def chat(
    ctx: click.Context,
    prompt: str | None,
    session_id: str | None,
    provider_id: str | None,
    model: str | None,
    files: tuple[Path, ...],
    temperature: float | None,
    max_tokens: int | None,
    seed: str | None,
    api_key: str | None,
    raw: bool,
):
    """
    Send a message, or start an interactive session when PROMPT is omitted.

    \b
    Examples:
        chatstudio chat "What is a monad?"
        chatstudio chat -p openai -m gpt-4 "Summarize this" -f notes.md
        chatstudio chat -s session_123
    """
    attachments = [_read_attachment(path) for path in files]

    def request_for(text: str, sid: str | None, with_files: bool) -> GenerationRequest:
        return GenerationRequest(
            prompt=text,
            provider_id=provider_id,
            model_hint=model,
            seed=seed,
            temperature=temperature,
            max_tokens=max_tokens,
            session_id=sid,
            attachments=attachments if with_files else [],
            credential=api_key,
        )

    if prompt is not None:
        try:
            sid = _send(ctx, request_for(prompt, session_id, True), raw)
        except (InvalidRequestError, MissingCredentialError, GenerationFailedError) as e:
            _fail(str(e))
        console_err.print(f"[dim]session: {sid}[/dim]")
        return

    sid = _service(ctx).memory.open(session_id)
    console.print(
        Panel(
            f"[bold]Chatting with {provider_id or 'the default provider'}[/bold]\n"
            f"Session [cyan]{sid}[/cyan]\n\n"
            "[dim]/history shows the conversation, /clear forgets it, /exit quits[/dim]",
            border_style="blue",
        )
    )
    first = True
    while True:
        try:
            text = console.input("[bold green]you>[/bold green] ")
        except (EOFError, KeyboardInterrupt):
            console.print()
            break
        text = text.strip()
        if not text:
            continue
        if text in EXIT_COMMANDS:
            break
        if text == "/clear":
            _service(ctx).clear_history(sid)
            console.print("[dim]Memory cleared[/dim]")
            continue
        if text == "/history":
            _print_history(_service(ctx), sid)
            continue

        try:
            _send(ctx, request_for(text, sid, first), raw)
            first = False
        except (InvalidRequestError, MissingCredentialError, GenerationFailedError) as e:
            console_err.print(f"[red]Error:[/red] {e}")


def _print_history(service: ChatService, session_id: str) -> None:
    history = service.get_history(session_id)
    if not history.turns:
        console.print("[dim]No messages in this session[/dim]")
        return
    for turn in history.turns:
        style = "green" if turn.role == "user" else "blue"
        console.print(f"[{style}]{turn.role}[/{style}] [dim]{turn.created_at:%Y-%m-%d %H:%M:%S}[/dim]")
        console.print(turn.content)
        console.print()


@cli.command()
@click.option("--session", "-s", "session_id", required=True, help="Session id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def history(ctx: click.Context, session_id: str, as_json: bool):
    """Show the stored turns of a session."""
    service = _service(ctx)
    if as_json:
        click.echo(service.get_history(session_id).model_dump_json(indent=2))
        return
    _print_history(service, session_id)


@cli.command()
@click.option("--session", "-s", "session_id", required=True, help="Session id")
@click.pass_context
def clear(ctx: click.Context, session_id: str):
    """Forget a session's conversation."""
    sid = _service(ctx).clear_history(session_id)
    console.print(f"[green]✓[/green] Cleared {sid}")


@cli.command()
@click.option(
    "--capability",
    "-c",
    type=click.Choice(["text", "image", "both"]),
    default=None,
    help="Only providers able to produce this",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def providers(ctx: click.Context, capability: str | None, as_json: bool):
    """List built-in and user-defined providers."""
    listed = _service(ctx).list_providers(capability, _settings(ctx).catalog())

    if as_json:
        click.echo(json.dumps([p.model_dump(mode="json", exclude={"credential"}) for p in listed], indent=2))
        return

    table = Table(title="Providers")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Dialect")
    table.add_column("Source")
    table.add_column("Key")

    config_mgr = ConfigManager()
    for p in listed:
        if not p.requires_credential:
            key = "[dim]-[/dim]"
        elif p.credential_env and config_mgr.get(p.credential_env):
            key = "[green]set[/green]"
        else:
            key = f"[yellow]{p.credential_env or 'missing'}[/yellow]"
        name = p.name if p.enabled else f"{p.name} [dim](disabled)[/dim]"
        table.add_row(p.id, name, p.capability, p.dialect, p.source, key)

    console.print(table)


@cli.command()
@click.argument("prompt")
@click.option("--provider", "-p", "provider_id", default=None, help="Provider id (default: pollinations)")
@click.option("--model", "-m", default=None)
@click.option("--width", type=int, default=1024)
@click.option("--height", type=int, default=1024)
@click.option("--seed", default=None)
@click.option("--negative", "negative_prompt", default=None, help="What the image should not contain")
@click.option("--steps", type=click.IntRange(min=1), default=20, show_default=True)
@click.option("--guidance", "guidance_scale", type=click.FloatRange(min=0, min_open=True), default=7.5, show_default=True)
@click.option("--enhance", is_flag=True, help="Let the provider rewrite the prompt")
@click.option("--private", is_flag=True, help="Keep the image out of the public feed")
@click.option("--no-safety", "no_safety", is_flag=True, help="Disable the safety checker")
@click.option("--api-key", default=None, help="Key for this request only")
@click.pass_context
def image(
    ctx: click.Context,
    prompt: str,
    provider_id: str | None,
    model: str | None,
    width: int,
    height: int,
    seed: str | None,
    negative_prompt: str | None,
    steps: int,
    guidance_scale: float,
    enhance: bool,
    private: bool,
    no_safety: bool,
    api_key: str | None,
):
    """Generate an image and print its URL."""
    request = ImageRequest(
        prompt=prompt,
        provider_id=provider_id,
        model_hint=model,
        seed=seed,
        width=width,
        height=height,
        negative_prompt=negative_prompt,
        steps=steps,
        guidance_scale=guidance_scale,
        enhance=enhance,
        private=private,
        safety_checker=not no_safety,
        credential=api_key,
    )
    try:
        with console.status("[dim]Generating...[/dim]"):
            result = _service(ctx).generate_image(request, _settings(ctx).catalog())
    except (InvalidRequestError, MissingCredentialError, GenerationFailedError) as e:
        _fail(str(e))

    if result.degraded:
        console_err.print(f"[yellow]Generated by fallback provider '{result.provider_id}'[/yellow]")
    click.echo(result.content)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind")
@click.option("--port", default=8000, type=int)
@click.option("--cors-origin", "cors_origins", multiple=True, help="Allowed origin (default: any)")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int, cors_origins: tuple[str, ...]):
    """Start the HTTP API."""
    import uvicorn

    from chatstudio.server.app import create_app

    app = create_app(settings=_settings(ctx), cors_origins=list(cors_origins) or None)
    console.print(f"[bold]chatstudio[/bold] listening on [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run(app, host=host, port=port, log_level="debug" if ctx.obj["debug"] else "info")


# =============================================================================
# Config Commands
# =============================================================================


@cli.group()
def config():
    """Manage provider API keys."""
    pass


@config.command("set")
@click.argument("key_name")
@click.option(
    "--value",
    "-v",
    help="Set value directly (use with caution - visible in shell history)",
)
def config_set(key_name: str, value: str | None):
    """
    Store an API key.

    \b
    Examples:
        chatstudio config set OPENAI_API_KEY     # Prompts for the value
        chatstudio config set MY_KEY -v "value"  # Set with value (not recommended)
    """
    if not value:
        value = click.prompt(f"Value for {key_name}", hide_input=True)
    ConfigManager().set(key_name, value)
    console.print(f"[green]✓[/green] Saved {key_name}")


@config.command("list")
def config_list():
    """List all configured API keys."""
    ConfigManager().show_status()


@config.command("delete")
@click.argument("key_name")
def config_delete(key_name: str):
    """Delete a stored API key."""
    if ConfigManager().delete(key_name):
        console.print(f"[green]✓[/green] Deleted {key_name}")
    else:
        console.print(f"[yellow]Key not found:[/yellow] {key_name}")


@config.command("import")
@click.argument("file_path", type=click.Path(exists=True))
def config_import(file_path: str):
    """
    Import API keys from a .env file.

    The file should contain KEY=VALUE pairs, one per line.
    Lines starting with # are ignored.
    """
    try:
        imported = ConfigManager().set_from_file(file_path)
    except OSError as e:
        _fail(str(e))

    if imported == 0:
        console.print("[yellow]No keys found in file[/yellow]")
    else:
        console.print(f"[green]✓[/green] Imported {imported} key(s)")


# =============================================================================
# Local Model Commands
# =============================================================================


@cli.group()
def local():
    """Inspect locally hosted model servers."""
    pass


def _local_descriptor(endpoint: str, fmt: str | None, capability: str = "text"):
    from chatstudio.core.local_models import KNOWN_LOCAL_ENDPOINTS
    from chatstudio.models.provider import ProviderDescriptor

    url = KNOWN_LOCAL_ENDPOINTS.get(endpoint, endpoint)
    entry = {"id": "local", "endpoint": url, "type": capability, "source": "local"}
    if fmt:
        entry["format"] = fmt
    elif endpoint == "ollama":
        entry["format"] = "ollama"
    elif endpoint == "lmstudio":
        entry["format"] = "openai"
    return ProviderDescriptor.model_validate(entry)


_FORMAT_CHOICE = click.Choice(["openai", "ollama", "custom", "raw", "mistral", "anthropic"])


@local.command("endpoints")
def local_endpoints():
    """Show default addresses of common local servers."""
    from chatstudio.core.local_models import KNOWN_LOCAL_ENDPOINTS

    table = Table(title="Known Local Endpoints")
    table.add_column("Name", style="cyan")
    table.add_column("URL")
    for name, url in KNOWN_LOCAL_ENDPOINTS.items():
        table.add_row(name, url)
    console.print(table)


@local.command("models")
@click.argument("endpoint")
@click.option("--format", "-f", "fmt", type=_FORMAT_CHOICE, default=None, help="Wire format (inferred by default)")
def local_models_cmd(endpoint: str, fmt: str | None):
    """
    List models served at ENDPOINT (a URL or a known name such as 'ollama').
    """
    from chatstudio.core.local_models import list_models

    descriptor = _local_descriptor(endpoint, fmt)
    models = list_models(descriptor)
    if not models:
        console.print(f"[yellow]No models found at {descriptor.endpoint_url}[/yellow]")
        return
    for entry in models:
        if isinstance(entry, dict):
            name = entry.get("name") or entry.get("id") or json.dumps(entry)
        else:
            name = str(entry)
        console.print(f"  {name}")


@local.command("test")
@click.argument("endpoint")
@click.option("--format", "-f", "fmt", type=_FORMAT_CHOICE, default=None, help="Wire format (inferred by default)")
@click.option("--type", "capability", type=click.Choice(["text", "image"]), default="text")
def local_test(endpoint: str, fmt: str | None, capability: str):
    """Check that a local server answers."""
    from chatstudio.core.local_models import check_connection

    status = check_connection(_local_descriptor(endpoint, fmt, capability))
    if status.connected:
        console.print(f"[green]✓[/green] {status.details}")
    else:
        console.print(f"[red]✗[/red] {status.details}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
