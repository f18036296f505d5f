#!/usr/bin/env python3
"""
CLI for operating the Scorebook cricket scoring service
"""
import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from scorebook.config import configure_logging
from scorebook.database import init_db, get_session
from scorebook.models import Match, Ball, User
from scorebook.auth.utils import create_access_token
from scorebook.engine.approval_engine import ApprovalEngine
from scorebook.engine.scoring import compute_innings_score, summarize_over
from scorebook.generators import LeagueGenerator
from scorebook.services import AuditService, NotificationService, StatsService

console = Console()


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this run")
def cli(log_level: str):
    """Scorebook - Cricket League Scoring"""
    configure_logging(log_level.upper() if log_level else None)


@cli.command()
def init():
    """Initialize the database"""
    console.print("[yellow]Initializing database...[/yellow]")
    init_db()
    console.print("[green]Database initialized successfully![/green]")


@cli.command()
@click.option("--teams", "team_count", default=2, help="Number of teams to create")
@click.option("--squad-size", default=11, help="Players per team, captain included")
def seed_demo(team_count: int, squad_size: int):
    """Create demo teams, captains and scheduled fixtures"""
    init_db()
    session = get_session()
    try:
        league = LeagueGenerator.create_demo_league(session, team_count, squad_size)

        table = Table(title="Demo Teams")
        table.add_column("Team", style="cyan")
        table.add_column("Team ID")
        table.add_column("Captain", style="magenta")
        table.add_column("Captain ID")
        for team in league["teams"]:
            table.add_row(team.team_name, team.id, team.captain.full_name, team.captain_id)
        console.print(table)

        for match in league["matches"]:
            console.print(
                f"[green]Fixture:[/green] {match.team_a.team_name} vs {match.team_b.team_name} "
                f"at {match.venue} on {match.match_date:%Y-%m-%d} - match ID {match.id}"
            )
        console.print("\n[yellow]Use 'issue-token <captain id>' to act as a captain.[/yellow]")
    finally:
        session.close()


@cli.command()
@click.argument("user_id")
@click.option("--minutes", default=None, type=int, help="Token lifetime in minutes")
def issue_token(user_id: str, minutes: int):
    """Print an access token for an existing user"""
    session = get_session()
    try:
        user = session.get(User, user_id)
        if user is None:
            console.print(f"[red]User {user_id} not found.[/red]")
            raise SystemExit(1)
        console.print(f"[cyan]{user.full_name}[/cyan] ({user.role.value})")
        click.echo(create_access_token(user.id, minutes))
    finally:
        session.close()


@cli.command()
def process_auto_approvals():
    """Auto-approve every request whose deadline has passed"""
    session = get_session()
    try:
        engine = ApprovalEngine(
            session,
            audit=AuditService(session),
            stats=StatsService(session),
            notifier=NotificationService(),
        )
        result = engine.process_auto_approvals()
    finally:
        session.close()

    console.print(
        f"[green]Auto-approved: {result['auto_approved']}[/green]  "
        f"[yellow]Expired: {result['expired']}[/yellow]  "
        f"[dim]Skipped: {result['skipped']}[/dim]  "
        f"[red]Failed: {result['failed']}[/red]"
    )


@cli.command()
@click.argument("match_id")
def scorecard(match_id: str):
    """Show both innings of a match over by over"""
    session = get_session()
    try:
        match = session.get(Match, match_id)
        if match is None:
            console.print(f"[red]Match {match_id} not found.[/red]")
            raise SystemExit(1)

        console.print(Panel(
            f"[bold cyan]{match.team_a.team_name}[/bold cyan] vs "
            f"[bold magenta]{match.team_b.team_name}[/bold magenta]\n"
            f"{match.venue} - {match.match_date:%Y-%m-%d} - {match.status.value}"
        ))

        for innings in (1, 2):
            balls = (
                session.query(Ball)
                .filter_by(match_id=match_id, innings=innings)
                .order_by(Ball.over_number, Ball.ball_number, Ball.entry_seq)
                .all()
            )
            team = match.team_a if innings == 1 else match.team_b
            _print_innings(innings, team.team_name, balls)

        if match.winner_team_id:
            winner = match.team_a if match.winner_team_id == match.team_a_id else match.team_b
            console.print(f"\n[bold green]Winner: {winner.team_name}[/bold green]")
    finally:
        session.close()


def _print_innings(innings: int, team_name: str, balls: list):
    """Print per-over summary of one innings"""
    score = compute_innings_score(balls)
    console.print(
        f"\n[bold]Innings {innings} - {team_name}:[/bold] "
        f"{score.runs}/{score.wickets} ({score.overs_display} overs) - RR: {score.run_rate:.2f}"
    )
    if not balls:
        console.print("  [dim]No deliveries recorded[/dim]")
        return

    table = Table(title=f"Innings {innings} overs")
    table.add_column("Over", justify="right")
    table.add_column("Deliveries")
    table.add_column("R", justify="right")
    table.add_column("W", justify="right")
    table.add_column("Legal", justify="right")

    for over_number in sorted({b.over_number for b in balls}):
        summary = summarize_over(
            [b for b in balls if b.over_number == over_number], innings, over_number
        )
        table.add_row(
            str(over_number),
            " ".join(_delivery_symbol(b) for b in summary.balls),
            str(summary.runs),
            str(summary.wickets),
            str(summary.legal_balls),
        )

    console.print(table)


def _delivery_symbol(ball) -> str:
    if ball.is_wicket:
        return "W"
    if ball.is_wide:
        return f"{ball.runs}wd"
    if ball.is_no_ball:
        return f"{ball.runs}nb"
    if ball.is_bye:
        return f"{ball.runs}b"
    if ball.is_leg_bye:
        return f"{ball.runs}lb"
    return "." if ball.runs == 0 else str(ball.runs)


@cli.command()
@click.argument("match_id")
@click.option("--limit", default=20, help="Number of entries to show")
def audit(match_id: str, limit: int):
    """Show the most recent audit entries for a match"""
    session = get_session()
    try:
        logs = AuditService(session).get_match_audit_logs(match_id, limit)
        if not logs:
            console.print("[red]No audit entries for this match.[/red]")
            return

        table = Table(title=f"Audit log ({len(logs)} entries)")
        table.add_column("When")
        table.add_column("Action", style="cyan")
        table.add_column("By")
        table.add_column("Type")
        table.add_column("Auto", justify="center")
        table.add_column("Ball")

        for entry in logs:
            table.add_row(
                f"{entry.performed_at:%Y-%m-%d %H:%M:%S}",
                entry.action.value,
                entry.performed_by,
                entry.approval_type.value if entry.approval_type else "",
                "yes" if entry.was_auto_approved else "",
                f"{entry.over_number}.{entry.ball_number}" if entry.over_number is not None else "",
            )

        console.print(table)
    finally:
        session.close()


if __name__ == "__main__":
    cli()
