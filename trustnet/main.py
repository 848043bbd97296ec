"""
Trust Network CLI

Command-line interface for administering a referral trust network stored in
a JSON state file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

# Initialize console for rich output
console = Console()


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging with rich handler."""
    handlers = [RichHandler(console=console, show_path=False)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(message)s",
        handlers=handlers,
    )


def _open_network(ctx: click.Context):
    """Load the network from the state file named in the context."""
    from trustnet.network import ReferralNetwork
    from trustnet.utils.store import InMemoryStore

    store = InMemoryStore.load(ctx.obj["state_file"])
    return ReferralNetwork(store=store, config=ctx.obj["config"])


def _save_network(ctx: click.Context, network) -> None:
    network.shutdown()
    path = network.store.save(ctx.obj["state_file"])
    console.print(f"[dim]State saved to {path}[/dim]")


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    sys.exit(1)


def _print_ranking(network, limit: int) -> None:
    snapshot = network.get_latest_snapshot()
    if snapshot is None:
        console.print("[yellow]No ranking published yet. Run `recompute` first.[/yellow]")
        return

    log = snapshot.log
    status = "[green]converged[/green]" if log.converged else "[yellow]not converged[/yellow]"
    console.print(
        f"\n[bold]Ranking v{snapshot.version}[/bold] "
        f"({log.triggered_by}, {log.iterations} iterations, {status})"
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Rank", justify="right")
    table.add_column("Account")
    table.add_column("Score", justify="right")
    table.add_column("Display", justify="right")
    table.add_column("Pctl", justify="right")

    for score in snapshot.top(limit):
        account = network.store.get_account(score.account_id)
        table.add_row(
            str(score.rank),
            account.display_name if account else score.account_id,
            f"{score.trust_score:.4f}",
            str(score.display_score),
            str(score.percentile),
        )

    console.print(table)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option(
    "--config", "-c",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Path to config.yaml",
)
@click.option(
    "--state", "-s",
    "state_file",
    default=None,
    type=click.Path(dir_okay=False),
    help="State file (overrides config)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    config_path: Optional[str],
    state_file: Optional[str],
) -> None:
    """Trust Network - Vouching, trust ranking and referral payouts."""
    from trustnet.utils.config import load_config

    ctx.ensure_object(dict)

    config = load_config(Path(config_path) if config_path else None)
    ctx.obj["config"] = config
    ctx.obj["state_file"] = state_file or config.state_file

    if verbose:
        ctx.obj["log_level"] = "DEBUG"
    elif quiet:
        ctx.obj["log_level"] = "WARNING"
    else:
        ctx.obj["log_level"] = config.logging.level

    setup_logging(ctx.obj["log_level"], config.logging.file)


@cli.command("import")
@click.option(
    "--input", "-i",
    "input_dir",
    required=True,
    type=click.Path(exists=True, file_okay=False, dir_okay=True),
    help="Directory containing accounts.csv, relationships.csv, referrals.csv",
)
@click.pass_context
def import_export(ctx: click.Context, input_dir: str) -> None:
    """Import a CSV network export into the state file."""
    from trustnet.pipeline.ingest import load_network_export
    from trustnet.pipeline.seed import seed_network

    console.print("\n[bold blue]Importing Network Export[/bold blue]")
    console.print("=" * 50)

    network = _open_network(ctx)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Loading CSV files...", total=None)
        try:
            export = load_network_export(input_dir)
            progress.update(task, completed=True)
        except (FileNotFoundError, ValueError) as e:
            progress.update(task, completed=True)
            _fail(f"Failed to load data: {e}")

        task = progress.add_task("Seeding network...", total=None)
        report = seed_network(export, network)
        progress.update(task, completed=True)

    console.print(f"  [green]✓[/green] {report.accounts_created} accounts created")
    console.print(
        f"  [green]✓[/green] {report.relationships_confirmed} confirmed, "
        f"{report.relationships_pending} pending relationships"
    )
    console.print(f"  [green]✓[/green] {report.referrals_created} referrals")

    problems = export.errors + report.errors
    if problems:
        console.print(f"\n[yellow]{len(problems)} rows skipped:[/yellow]")
        for problem in problems[:20]:
            console.print(f"  • {problem}")

    _save_network(ctx, network)


@cli.command()
@click.option("--limit", "-n", default=10, help="Number of accounts to show")
@click.option("--report", is_flag=True, help="Also write ranking reports")
@click.pass_context
def recompute(ctx: click.Context, limit: int, report: bool) -> None:
    """Recompute trust scores and publish a new ranking."""
    from trustnet.errors import ComputationAborted, ComputationCancelled
    from trustnet.models.entities import ComputationTrigger

    network = _open_network(ctx)

    try:
        snapshot = network.recompute_trust_scores(ComputationTrigger.MANUAL.value)
    except (ComputationAborted, ComputationCancelled) as e:
        _fail(f"Recomputation failed: {e}")

    _print_ranking(network, limit)

    if report:
        _write_reports(ctx, network, snapshot)

    _save_network(ctx, network)


def _write_reports(ctx: click.Context, network, snapshot) -> None:
    from trustnet.pipeline.outputs import generate_outputs

    output_cfg = ctx.obj["config"].output
    output_files = generate_outputs(
        snapshot,
        dict(network.store.accounts),
        history=network.get_computation_history(),
        output_dir=output_cfg.directory,
        formats=output_cfg.formats,
        timestamp_filenames=output_cfg.timestamp_filenames,
    )

    console.print("\n[bold]Reports Generated:[/bold]")
    for report_type, files in output_files.items():
        for fmt, path in files.items():
            console.print(f"  • {report_type}.{fmt}: [cyan]{path}[/cyan]")


@cli.command()
@click.option("--limit", "-n", default=10, help="Number of accounts to show")
@click.option("--report", is_flag=True, help="Also write ranking reports")
@click.pass_context
def ranking(ctx: click.Context, limit: int, report: bool) -> None:
    """Show the latest published ranking."""
    network = _open_network(ctx)
    _print_ranking(network, limit)

    snapshot = network.get_latest_snapshot()
    if report and snapshot is not None:
        _write_reports(ctx, network, snapshot)


@cli.command()
@click.option("--limit", "-n", default=20, help="Number of runs to show")
@click.pass_context
def history(ctx: click.Context, limit: int) -> None:
    """Show propagation run history, newest first."""
    network = _open_network(ctx)
    logs = network.get_computation_history()

    if not logs:
        console.print("[yellow]No propagation runs recorded.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("When")
    table.add_column("Trigger")
    table.add_column("Iter", justify="right")
    table.add_column("Converged", justify="center")
    table.add_column("Accounts", justify="right")
    table.add_column("Edges", justify="right")

    for log in logs[:limit]:
        table.add_row(
            log.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            log.triggered_by,
            str(log.iterations),
            "[green]Yes[/green]" if log.converged else "[yellow]No[/yellow]",
            str(log.num_accounts),
            str(log.num_edges),
        )

    console.print(table)


@cli.command()
@click.argument("sender")
@click.argument("recipient")
@click.option("--trust", "-t", required=True, type=int, help="Trust points to commit")
@click.pass_context
def invite(ctx: click.Context, sender: str, recipient: str, trust: int) -> None:
    """Send an invitation from SENDER (id or email) to RECIPIENT."""
    from trustnet.errors import TrustNetError

    network = _open_network(ctx)
    try:
        sender_account = network.get_account(sender)
        invitation = network.send_invitation(sender_account.id, recipient, trust)
    except TrustNetError as e:
        _fail(str(e))

    console.print(
        f"[green]✓[/green] Invitation [cyan]{invitation.id}[/cyan] sent to "
        f"{invitation.recipient_email} ({invitation.trust_points} points reserved)"
    )
    _save_network(ctx, network)


@cli.command()
@click.argument("invitation_id")
@click.option("--first-name", default="", help="First name for a new account")
@click.option("--last-name", default="", help="Last name for a new account")
@click.pass_context
def accept(ctx: click.Context, invitation_id: str, first_name: str, last_name: str) -> None:
    """Accept a pending invitation."""
    from trustnet.errors import TrustNetError

    network = _open_network(ctx)
    try:
        invitation, edge = network.accept_invitation(
            invitation_id, first_name=first_name, last_name=last_name
        )
    except TrustNetError as e:
        _fail(str(e))

    console.print(
        f"[green]✓[/green] Invitation {invitation.id} accepted by "
        f"[cyan]{invitation.recipient_id}[/cyan] (relationship {edge.id})"
    )
    _save_network(ctx, network)


@cli.command()
@click.argument("invitation_id", required=False)
@click.option("--stale", is_flag=True, help="Expire every invitation past the expiry age")
@click.pass_context
def expire(ctx: click.Context, invitation_id: Optional[str], stale: bool) -> None:
    """Expire one pending invitation, or all stale ones."""
    from trustnet.errors import TrustNetError

    if not invitation_id and not stale:
        _fail("Give an INVITATION_ID or --stale")

    network = _open_network(ctx)
    try:
        if stale:
            expired = network.expire_stale_invitations()
        else:
            expired = [network.expire_invitation(invitation_id)]
    except TrustNetError as e:
        _fail(str(e))

    for invitation in expired:
        console.print(
            f"[green]✓[/green] Invitation {invitation.id} expired, "
            f"{invitation.trust_points} points returned to {invitation.sender_id}"
        )
    if not expired:
        console.print("[dim]No invitations expired.[/dim]")

    _save_network(ctx, network)


@cli.command()
@click.argument("job_id")
@click.argument("sender")
@click.argument("recipient")
@click.option("--message", "-m", default=None, help="Note sent with the forward")
@click.pass_context
def forward(
    ctx: click.Context,
    job_id: str,
    sender: str,
    recipient: str,
    message: Optional[str],
) -> None:
    """Record SENDER passing JOB_ID on to RECIPIENT (ids or emails)."""
    from trustnet.errors import TrustNetError

    network = _open_network(ctx)
    try:
        from_account = network.get_account(sender)
        to_account = network.get_account(recipient)
        job_forward = network.forward_job(
            job_id, from_account.id, to_account.id, message=message
        )
    except TrustNetError as e:
        _fail(str(e))

    console.print(
        f"[green]✓[/green] Job {job_id} forwarded from {from_account.display_name} "
        f"to {to_account.display_name} ([cyan]{job_forward.id}[/cyan])"
    )
    _save_network(ctx, network)


@cli.command()
@click.argument("job_id")
@click.argument("candidate_email")
@click.argument("referrer")
@click.option("--notes", default=None, help="Free-text notes")
@click.pass_context
def refer(
    ctx: click.Context,
    job_id: str,
    candidate_email: str,
    referrer: str,
    notes: Optional[str],
) -> None:
    """Refer CANDIDATE_EMAIL to JOB_ID through REFERRER (id or email)."""
    from trustnet.errors import TrustNetError

    network = _open_network(ctx)
    try:
        referrer_account = network.get_account(referrer)
        referral = network.submit_referral(
            job_id, candidate_email, referrer_account.id, notes=notes
        )
    except TrustNetError as e:
        _fail(str(e))

    console.print(
        f"[green]✓[/green] Referral [cyan]{referral.id}[/cyan] created "
        f"(chain depth {referral.chain_depth})"
    )
    _save_network(ctx, network)


@cli.command()
@click.argument("referral_id")
@click.argument(
    "new_status",
    type=click.Choice(["screening", "interviewing", "hired", "rejected"]),
)
@click.pass_context
def advance(ctx: click.Context, referral_id: str, new_status: str) -> None:
    """Move a referral to NEW_STATUS."""
    from trustnet.errors import TrustNetError

    network = _open_network(ctx)
    try:
        referral = network.update_referral_status(referral_id, new_status)
    except TrustNetError as e:
        _fail(str(e))

    console.print(f"[green]✓[/green] Referral {referral.id} is now {referral.status.value}")
    _save_network(ctx, network)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show network and ledger statistics."""
    network = _open_network(ctx)

    console.print("\n[bold blue]Trust Network Status[/bold blue]")
    console.print("=" * 50)
    console.print(f"\n[bold]State file:[/bold] {ctx.obj['state_file']}")

    console.print("\n[bold]Records:[/bold]")
    table = Table(show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    for key, value in network.store.stats().items():
        table.add_row(key.replace("_", " ").capitalize(), "-" if value is None else str(value))
    console.print(table)

    summary = network.ledger.get_summary()
    console.print("\n[bold]Ledger:[/bold]")
    table = Table(show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Granted", str(summary["total_granted"]))
    table.add_row("Available", str(summary["total_available"]))
    table.add_row("Allocated", str(summary["total_allocated"]))
    table.add_row("Avg allocated", f"{summary['avg_allocated_fraction']:.1%}")
    console.print(table)
    console.print()


@cli.command()
@click.argument("referral_id")
@click.option("--amount", "-a", required=True, type=int, help="Total payout")
@click.option("--report", is_flag=True, help="Also write split reports")
@click.pass_context
def splits(ctx: click.Context, referral_id: str, amount: int, report: bool) -> None:
    """Show the payout split for a hired referral."""
    from trustnet.errors import TrustNetError
    from trustnet.pipeline.outputs import OutputGenerator

    network = _open_network(ctx)
    try:
        payouts = network.compute_splits(referral_id, amount)
        referral = network.chains.get_referral(referral_id)
    except TrustNetError as e:
        _fail(str(e))

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Account")
    table.add_column("Distance", justify="right")
    table.add_column("Weight", justify="right")
    table.add_column("Amount", justify="right")

    for i, split in enumerate(payouts, 1):
        account = network.store.get_account(split.account_id)
        table.add_row(
            str(i),
            account.display_name if account else split.account_id,
            str(split.distance_from_hire),
            f"{split.weight:.2%}",
            str(split.amount),
        )

    console.print(table)
    console.print(f"Total: {sum(s.amount for s in payouts)}")

    if report:
        output_cfg = ctx.obj["config"].output
        generator = OutputGenerator(
            output_dir=output_cfg.directory,
            formats=output_cfg.formats,
            timestamp_filenames=output_cfg.timestamp_filenames,
        )
        files = generator.generate_payment_splits(
            referral, payouts, dict(network.store.accounts), amount
        )
        for fmt, path in files.items():
            console.print(f"  • splits.{fmt}: [cyan]{path}[/cyan]")


@cli.command()
@click.pass_context
def reconcile(ctx: click.Context) -> None:
    """Repair relationship pairs stored more than once."""
    network = _open_network(ctx)
    kept = network.reconcile_relationships()

    if kept:
        console.print(f"[yellow]Repaired {len(kept)} duplicated relationship pairs[/yellow]")
    else:
        console.print("[green]✓[/green] No duplicate relationships found")

    _save_network(ctx, network)


@cli.command()
@click.pass_context
def audit(ctx: click.Context) -> None:
    """Check trust conservation on every account."""
    network = _open_network(ctx)
    broken = network.ledger.audit()

    if broken:
        console.print(f"[red]{len(broken)} trust accounts fail conservation:[/red]")
        for account_id in broken:
            console.print(f"  • {account_id}")
        sys.exit(1)

    console.print(
        f"[green]✓[/green] All {len(network.store.trust_accounts)} trust accounts balance"
    )


@cli.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    from trustnet import __version__

    console.print(f"Trust Network v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
