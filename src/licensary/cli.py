"""Typer CLI for Licensary."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="licensary", help="Licensary: license issuance and spreadsheet sync")
console = Console()


@app.command()
def serve(
    host: str = typer.Option(None, help="Bind host (default from settings)"),
    port: int = typer.Option(None, help="Bind port (default from settings)"),
):
    """Start the Licensary API server."""
    import uvicorn
    from licensary.app import create_app
    from licensary.common.config import get_settings

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port
    console.print(f"[bold green]Starting Licensary on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


async def _with_engine(action):
    from licensary.deps import get_db, get_sheets_client, get_sync_engine

    engine = get_sync_engine()
    if engine is None:
        raise typer.BadParameter("sheet sync is disabled; set LICENSARY_SHEETS_ENABLED=true")
    db = get_db()
    await db.init()
    await db.create_all()
    try:
        return await action(engine)
    finally:
        await get_sheets_client().close()
        await db.close()


@app.command()
def pull():
    """Replace the license table with the spreadsheet contents (one cycle)."""
    from licensary.common.exceptions import LicensaryError

    try:
        result = asyncio.run(_with_engine(lambda engine: engine.pull()))
    except LicensaryError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)

    if result.aborted:
        console.print(f"[bold yellow]ABORTED[/bold yellow] — {result.message}")
        raise typer.Exit(1)

    console.print(
        f"[bold green]Pulled {result.inserted} licenses[/bold green] "
        f"({result.rows_read} rows read, {len(result.duplicates)} duplicate keys)"
    )
    if result.skipped:
        table = Table(title="Skipped rows")
        table.add_column("Row", justify="right")
        table.add_column("Reason")
        for row in result.skipped:
            table.add_row(str(row.row_number), row.reason)
        console.print(table)


@app.command()
def export():
    """Write every stored license to the spreadsheet."""
    from licensary.common.exceptions import LicensaryError

    try:
        result = asyncio.run(_with_engine(lambda engine: engine.export_all()))
    except LicensaryError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)
    console.print(
        f"[bold green]Exported[/bold green] {result.updated} updated, {result.appended} appended"
    )


@app.command()
def health(
    url: str = typer.Option("http://localhost:3001", help="Server URL"),
):
    """Check Licensary server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
