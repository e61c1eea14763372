"""Typer CLI for Credit-Ledger."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="ledger", help="Credit-Ledger: credits, license codes and access grants")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the Credit-Ledger API server."""
    import uvicorn
    from credit_ledger.app import create_app

    console.print(f"[bold green]Starting Credit-Ledger on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command("init-db")
def init_db():
    """Create all tables in the configured database."""
    from credit_ledger.common.config import get_settings
    from credit_ledger.common.database import DatabaseManager

    async def _run():
        db = DatabaseManager(get_settings())
        await db.init()
        try:
            await db.create_all()
        finally:
            await db.close()

    asyncio.run(_run())
    console.print("[bold green]Database initialized[/bold green]")


@app.command("generate-codes")
def generate_codes(
    amount: int = typer.Argument(..., help="Number of codes (1-100)"),
    credit_type: str = typer.Option("universal", help="universal, video, article or both"),
    credit_value: int = typer.Option(0, help="Universal balance per code"),
    video_minutes: int = typer.Option(0, help="Video minutes per code"),
    article_count: int = typer.Option(0, help="Article credits per code"),
    prefix: str = typer.Option("", help="Code prefix (default GIFT)"),
):
    """Generate and store a batch of license codes directly in the database."""
    from credit_ledger.codes.service import CodeService
    from credit_ledger.common.config import get_settings
    from credit_ledger.common.database import DatabaseManager
    from credit_ledger.common.exceptions import LedgerError

    settings = get_settings()

    async def _run():
        db = DatabaseManager(settings)
        await db.init()
        try:
            await db.create_all()
            return await db.run_transaction(
                CodeService(settings).generate_codes,
                amount,
                credit_type=credit_type,
                credit_value=credit_value,
                video_minutes=video_minutes,
                article_count=article_count,
                prefix=prefix or None,
            )
        finally:
            await db.close()

    try:
        result = asyncio.run(_run())
    except LedgerError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)

    table = Table(title=f"Batch {result['batch_id']}")
    table.add_column("Code", style="bold")
    table.add_column("Type")
    for code in result["codes"]:
        table.add_row(code.code, code.credit_type)
    console.print(table)
    if result["count"] < result["requested"]:
        console.print(
            f"[yellow]Generated {result['count']} of {result['requested']} codes[/yellow]"
        )


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check Credit-Ledger server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except (httpx.HTTPError, ValueError, KeyError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
