#!/usr/bin/env python3

import asyncio
import csv
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from resumerefresh.core.errors import CompositionError, ConfigurationError
from resumerefresh.core.recipient import DispatchRequest
from resumerefresh.email.mail_channel import SMTPConnectionPool
from resumerefresh.email.refresh_service import create_refresh_service
from resumerefresh.utils.config import get_settings
from resumerefresh.utils.database import get_db

app = typer.Typer(name="resume-refresh", add_completion=False)
console = Console()


async def _run_with_service(settings, work):
    pool = SMTPConnectionPool.from_settings(settings)
    await pool.open()
    try:
        return await work(create_refresh_service(settings, pool))
    finally:
        await pool.close()


def _read_applicants(path: Path, default_company: Optional[str]) -> list[DispatchRequest]:
    """CSV columns: email,name,jobTitle[,companyName]"""
    requests = []
    with open(path, newline="", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            row = {k.strip(): (v or "").strip() for k, v in row.items() if k}
            if not row.get("email"):
                continue
            requests.append(DispatchRequest(
                recipient=row["email"],
                applicant_name=row.get("name") or "Applicant",
                job_title=row.get("jobTitle") or "Position",
                company_name=row.get("companyName") or default_company,
            ))
    return requests


def _print_result(result) -> None:
    if result.success:
        variant = "AMP" if result.interactive_used else "HTML"
        console.print(
            f"[green]✅ Sent {variant} email to {result.recipient}[/green] "
            f"[dim]({result.attempts} attempt(s), {result.message_id})[/dim]"
        )
    else:
        console.print(
            f"[red]❌ Failed to send to {result.recipient}: {result.failure_reason} "
            f"after {result.attempts} attempt(s)[/red]"
        )
        if result.error_message:
            console.print(f"[dim]{result.error_message}[/dim]")


@app.command()
def send(
    email: str = typer.Option(..., "--email", "-e"),
    name: str = typer.Option("Applicant", "--name", "-n"),
    job: str = typer.Option("Position", "--job", "-j"),
    company: Optional[str] = typer.Option(None, "--company", "-c"),
    remote: Optional[str] = typer.Option(None, "--remote", help="Send through a deployed backend instead of SMTP"),
):
    console.print(f"\n📧 [bold blue]Sending resume refresh email to {email}...[/bold blue]\n")

    if remote:
        try:
            response = httpx.post(
                f"{remote.rstrip('/')}/api/test/send-test",
                json={"to": email, "applicantName": name, "jobTitle": job, "companyName": company},
                timeout=60,
            )
            response.raise_for_status()
            console.print(f"[green]✅ {response.json().get('message', 'Sent')}[/green]")
        except httpx.HTTPError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1)
        return

    settings = get_settings()
    request = DispatchRequest(recipient=email, applicant_name=name, job_title=job, company_name=company)

    try:
        result = asyncio.run(_run_with_service(settings, lambda s: s.send_refresh_email(request)))
    except (ConfigurationError, CompositionError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    _print_result(result)
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def bulk(
    file: Path = typer.Option(..., "--file", "-f", exists=True, dir_okay=False),
    company: Optional[str] = typer.Option(None, "--company", "-c"),
    delay: Optional[float] = typer.Option(None, "--delay", "-d"),
):
    settings = get_settings()
    requests = _read_applicants(file, company)

    if not requests:
        console.print("[yellow]No applicants found in file[/yellow]")
        return

    console.print(f"\n📦 [bold blue]Sending {len(requests)} resume refresh emails...[/bold blue]\n")

    delay_seconds = settings.bulk_delay_seconds if delay is None else delay
    try:
        stats = asyncio.run(_run_with_service(
            settings, lambda s: s.send_batch(requests, delay_seconds=delay_seconds)
        ))
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title="Bulk Send Results")
    table.add_column("Email", style="cyan")
    table.add_column("Result")
    table.add_column("Attempts", style="dim")
    table.add_column("Detail", style="dim")

    for entry in stats["results"]:
        table.add_row(
            entry["email"],
            "[green]sent[/green]" if entry["success"] else "[red]failed[/red]",
            str(entry.get("attempts", "-")),
            entry.get("messageId") or entry.get("error") or "",
        )

    console.print(table)
    console.print(f"\n[green]✅ {stats['sent']} sent[/green], [red]{stats['failed']} failed[/red]")


@app.command(name="test-connection")
def test_connection():
    settings = get_settings()
    console.print(f"\n🔌 [bold blue]Testing SMTP connection to {settings.smtp_host}:{settings.smtp_port}...[/bold blue]\n")

    try:
        result = asyncio.run(_run_with_service(settings, lambda s: s.dispatcher.test_connection()))
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    if result["success"]:
        console.print(f"[green]✅ {result['message']}[/green]")
    else:
        console.print(f"[red]❌ {result['message']}[/red]")
        raise typer.Exit(code=1)


@app.command()
def submissions(
    email: Optional[str] = typer.Option(None, "--email", "-e"),
    page: int = typer.Option(1, "--page", "-p"),
    limit: int = typer.Option(20, "--limit", "-l"),
):
    db = get_db()
    console.print("\n📋 [bold blue]Resume Submissions[/bold blue]\n")

    records = db.list_submissions(page=page, limit=limit, email_filter=email)
    if not records:
        console.print("[yellow]No submissions found[/yellow]")
        return

    table = Table()
    table.add_column("ID", style="dim")
    table.add_column("Email", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Role", style="yellow")
    table.add_column("Years", justify="right")
    table.add_column("Source", style="magenta")
    table.add_column("Updated", style="dim")

    for record in records:
        table.add_row(
            record.id[:8],
            record.email,
            record.applicant_name[:30],
            record.current_role[:30],
            str(record.years_of_experience),
            record.submission_metadata.source,
            record.updated_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)
    console.print(f"[dim]Page {page} · {db.count_submissions(email)} total[/dim]")


@app.command()
def config():
    settings = get_settings()
    console.print("\n⚙️ [bold blue]Configuration[/bold blue]\n")

    console.print(Panel.fit(
        f"[cyan]Host:[/cyan] {settings.smtp_host}:{settings.smtp_port}\n"
        f"[cyan]Secure:[/cyan] {settings.smtp_secure}\n"
        f"[cyan]User:[/cyan] {settings.smtp_user or '[red]not set[/red]'}\n"
        f"[cyan]Pool Size:[/cyan] {settings.mail.pool_size}\n"
        f"[cyan]Retry:[/cyan] {settings.retry.max_attempts} attempts, {settings.retry.base_delay}s base delay",
        title="Mail"
    ))

    console.print(Panel.fit(
        f"[cyan]Environment:[/cyan] {settings.environment}\n"
        f"[cyan]Server URL:[/cyan] {settings.server_url}\n"
        f"[cyan]AMP Domains:[/cyan] {', '.join(settings.amp.supported_domains)}\n"
        f"[cyan]Trusted Origins:[/cyan] {', '.join(settings.amp.trusted_origins)}",
        title="AMP"
    ))


@app.command()
def version():
    from resumerefresh import __version__
    console.print(f"\n📧 Resume Refresh v{__version__}\n")


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, "--port", "-p"),
    host: str = typer.Option("127.0.0.1", "--host"),
):
    port = port or get_settings().port
    console.print(f"\n🚀 [bold blue]Starting API server...[/bold blue]\n")
    console.print(f"📧 AMP endpoint: [cyan]http://{host}:{port}/api/amp/submit[/cyan]\n")

    from resumerefresh.dashboard.app import run_dashboard
    run_dashboard(host=host, port=port)


def main():
    app()


if __name__ == "__main__":
    main()
