"""relaychat CLI: chat through the relay, inspect tools, run the servers."""

from __future__ import annotations

import asyncio
import json

import httpx
import typer
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from relaychat.client.stream import ChatStreamClient, StreamBuffer
from relaychat.config import get_config
from relaychat.errors import ChatStreamError, McpClientError
from relaychat.mcp.client import McpClient

app = typer.Typer(
    name="relaychat",
    help="relaychat: streaming LLM chat relay",
    no_args_is_help=True,
    add_completion=False,
)
tools_app = typer.Typer(help="Inspect and call tool gateway tools", no_args_is_help=True)
app.add_typer(tools_app, name="tools")

console = Console()

DEFAULT_URL = "http://localhost:3001"
DEFAULT_MCP_URL = "http://localhost:3000"


def _parse_tool_args(pairs: list[str]) -> dict:
    """Parse ``key=value`` pairs; values are read as JSON when they parse."""
    arguments: dict = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got '{pair}'")
        try:
            arguments[key.strip()] = json.loads(value)
        except json.JSONDecodeError:
            arguments[key.strip()] = value
    return arguments


async def _stream_chat(base_url: str, message: str, raw: bool) -> int:
    client = ChatStreamClient(base_url)
    buffer = StreamBuffer()
    exit_code = 0

    with Live(Markdown(""), console=console, refresh_per_second=12, auto_refresh=not raw) as live:
        try:
            async for event in client.stream(message):
                if raw:
                    live.console.print(f"[dim]{event.event}[/dim] {json.dumps(event.data, ensure_ascii=False)}")
                elif event.event == "text":
                    buffer.apply(event.data.get("text", ""), event.data.get("snapshot"))
                    live.update(Markdown(buffer.text))
                elif event.event == "contentBlock" and event.data.get("type") == "tool_use":
                    live.console.print(f"[dim]tool requested: {event.data.get('name')}[/dim]")
                if event.event == "error":
                    live.console.print(f"[red]Error:[/red] {event.data.get('error', 'Stream error')}")
                    exit_code = 1
        except asyncio.CancelledError:
            # Ctrl-C: drop the upstream request before unwinding
            await client.cancel()
            raise
    return exit_code


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send"),
    base_url: str = typer.Option(DEFAULT_URL, "--url", "-u", envvar="RELAYCHAT_URL"),
    raw: bool = typer.Option(False, "--raw", help="Print every SSE event instead of rendering text"),
) -> None:
    """Send a message and render the streamed reply."""
    try:
        exit_code = asyncio.run(_stream_chat(base_url, message, raw))
    except KeyboardInterrupt:
        console.print("[yellow]cancelled[/yellow]")
        raise typer.Exit(130)
    except httpx.ConnectError:
        console.print(f"[red]Error:[/red] Cannot connect to the relay at {base_url}")
        console.print("Is the server running? Start it with: relaychat serve")
        raise typer.Exit(1)
    except ChatStreamError as e:
        status = f" {e.status_code}" if e.status_code else ""
        console.print(f"[red]Error{status}:[/red] {e}")
        raise typer.Exit(1)
    if exit_code:
        raise typer.Exit(exit_code)


@app.command()
def status(
    base_url: str = typer.Option(DEFAULT_URL, "--url", "-u", envvar="RELAYCHAT_URL"),
) -> None:
    """Check the relay's health."""
    try:
        resp = httpx.get(f"{base_url.rstrip('/')}/health", timeout=10.0)
        resp.raise_for_status()
    except httpx.HTTPError:
        console.print(f"[red]✗[/red] relay is not reachable at {base_url}")
        raise typer.Exit(1)

    data = resp.json()

    table = Table(title="relaychat status", show_header=False, border_style="blue")
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Status", f"[green]{data['status']}[/green]")
    table.add_row("Service", data.get("service", "?"))
    table.add_row("Version", data.get("version", "?"))
    table.add_row("Model", data.get("model", "?"))
    table.add_row("Tools", str(data.get("tool_count", 0)) if data.get("tools_enabled") else "disabled")

    if "llm_stats" in data:
        stats = data["llm_stats"]
        table.add_row("Requests", str(stats.get("request_count", 0)))
        table.add_row("Tokens Used", str(stats.get("total_tokens", 0)))

    console.print()
    console.print(table)
    console.print()


@tools_app.command("list")
def tools_list(
    mcp_url: str = typer.Option(DEFAULT_MCP_URL, "--url", "-u", envvar="RELAYCHAT_MCP_SERVER_URL"),
) -> None:
    """List the tools a gateway advertises."""

    async def _list() -> list[dict]:
        async with McpClient(mcp_url) as client:
            await client.initialize()
            return await client.list_tools()

    try:
        tools = asyncio.run(_list())
    except (httpx.HTTPError, McpClientError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Tools", border_style="blue")
    table.add_column("Name", style="bold")
    table.add_column("Description")
    table.add_column("Arguments", style="dim")
    for tool in tools:
        properties = (tool.get("inputSchema") or {}).get("properties") or {}
        table.add_row(tool["name"], tool.get("description", ""), ", ".join(properties))
    console.print(table)


@tools_app.command("call")
def tools_call(
    name: str = typer.Argument(..., help="Tool name"),
    arg: list[str] = typer.Option([], "--arg", "-a", help="Argument as key=value (repeatable)"),
    mcp_url: str = typer.Option(DEFAULT_MCP_URL, "--url", "-u", envvar="RELAYCHAT_MCP_SERVER_URL"),
) -> None:
    """Call a gateway tool and print its text result."""
    arguments = _parse_tool_args(arg)

    async def _call() -> str:
        async with McpClient(mcp_url) as client:
            await client.initialize()
            return await client.call_tool(name, arguments)

    try:
        text = asyncio.run(_call())
    except (httpx.HTTPError, McpClientError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(Panel(text, title=name, border_style="blue"))


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind host (default: RELAYCHAT_HOST or 0.0.0.0)"),
    port: int | None = typer.Option(None, "--port", help="Bind port (default: RELAYCHAT_PORT or 3001)"),
    reload: bool = typer.Option(False, "--reload"),
) -> None:
    """Start the chat relay (for development)."""
    import uvicorn

    config = get_config()
    console.print(Panel("Starting relaychat relay...", border_style="blue"))
    uvicorn.run("relaychat.main:app", host=host or config.host, port=port or config.port, reload=reload)


@app.command("serve-mcp")
def serve_mcp(
    host: str | None = typer.Option(None, "--host", help="Bind host (default: RELAYCHAT_MCP_HOST or 0.0.0.0)"),
    port: int | None = typer.Option(None, "--port", help="Bind port (default: RELAYCHAT_MCP_PORT or 3000)"),
    reload: bool = typer.Option(False, "--reload"),
) -> None:
    """Start the weather tool gateway (for development)."""
    import uvicorn

    config = get_config()
    console.print(Panel("Starting weather tool gateway...", border_style="blue"))
    uvicorn.run(
        "relaychat.mcp.server:app",
        host=host or config.mcp.host,
        port=port or config.mcp.port,
        reload=reload,
    )


@app.command()
def version() -> None:
    """Show relaychat version."""
    from relaychat import __version__

    console.print(f"relaychat v{__version__}")


def main() -> None:
    """Entrypoint."""
    app()


if __name__ == "__main__":
    main()
