#!/usr/bin/env python3
"""
Prode Management CLI

This script provides command-line management functionality for the Prode application.
"""

import logging
from decimal import Decimal, InvalidOperation

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from prode import create_app, db
from prode.errors import ProdeError
from prode.models import AuditLog, LeaderboardCache, Match, Phase, Team, User
from prode.services.leaderboard import LeaderboardRefresher, get_leaderboard_page
from prode.services.match_points import MatchPointsCalculator, finalize_match_result
from prode.utils.cache_utils import invalidate_leaderboard_cache
from prode.utils.timezone_utils import convert_to_utc, to_naive_utc

app = create_app()


@click.group()
def cli():
    """Prode Management CLI"""
    pass


# Database Commands
@cli.group(name="db")
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command(name="init")
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")


# Phase Commands
@cli.group()
def phase():
    """Tournament phase commands"""
    pass


@phase.command()
@with_appcontext
def seed():
    """Create the World Cup phases"""
    try:
        created = Phase.seed_world_cup()
        db.session.commit()
        click.echo(f"✅ Created {len(created)} phases")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error seeding phases: {str(e)}")
        logging.error(f"Phase seed failed - SQL error: {e}")


@phase.command(name="list")
@with_appcontext
def list_phases():
    """List all phases"""
    phases = Phase.query.order_by(Phase.sort_order).all()

    if not phases:
        click.echo("No phases found. Run 'phase seed' first.")
        return

    click.echo("Phases:")
    for p in phases:
        click.echo(f"  {p.sort_order}. {p.slug}: {p.name} (x{p.multiplier})")


@phase.command(name="set-multiplier")
@click.argument("slug")
@click.argument("multiplier")
@with_appcontext
def set_multiplier(slug, multiplier):
    """Change the points multiplier of a phase"""
    try:
        value = Decimal(multiplier)
    except InvalidOperation:
        click.echo(f"❌ Invalid multiplier: {multiplier}")
        return
    if value < 1:
        click.echo("❌ Multiplier must be at least 1")
        return

    p = Phase.query.filter_by(slug=slug).first()
    if not p:
        click.echo(f"❌ Phase '{slug}' not found!")
        return

    p.points_multiplier = value
    db.session.commit()
    click.echo(f"✅ Phase {slug} now scores x{p.multiplier}")
    click.echo("ℹ️  Run 'match recalculate-all' to apply it to finished matches")


# Team Commands
@cli.group()
def team():
    """Team management commands"""
    pass


@team.command(name="create")
@click.argument("code")
@click.argument("name")
@click.option("--group", "group_letter", help="Group letter (A-L)")
@click.option("--flag-url", help="Flag image URL")
@with_appcontext
def create_team(code, name, group_letter, flag_url):
    """Create a national team"""
    try:
        t = Team(
            code=code.upper(),
            name=name,
            group_letter=group_letter.upper() if group_letter else None,
            flag_url=flag_url,
        )
        db.session.add(t)
        db.session.commit()
        click.echo(f"✅ Created team {t.code} ({t.name})")
    except IntegrityError:
        db.session.rollback()
        click.echo(f"❌ Team {code.upper()} already exists!")


# Match Commands
@cli.group()
def match():
    """Match management commands"""
    pass


@match.command(name="create")
@click.argument("home_code")
@click.argument("away_code")
@click.argument("phase_slug")
@click.argument(
    "kickoff", type=click.DateTime(formats=["%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M"])
)
@click.option("--lock-minutes", type=int, help="Minutes before kickoff to lock")
@click.option("--stadium", help="Stadium name")
@click.option("--city", help="Host city")
@with_appcontext
def create_match(home_code, away_code, phase_slug, kickoff, lock_minutes, stadium, city):
    """Create a match (KICKOFF is in the application timezone)"""
    home = Team.query.filter_by(code=home_code.upper()).first()
    away = Team.query.filter_by(code=away_code.upper()).first()
    p = Phase.query.filter_by(slug=phase_slug).first()

    if not home or not away:
        click.echo("❌ Both teams must exist. Create them with 'team create'.")
        return
    if home.id == away.id:
        click.echo("❌ A team cannot play itself")
        return
    if not p:
        click.echo(f"❌ Phase '{phase_slug}' not found!")
        return

    if lock_minutes is None:
        lock_minutes = current_app.config.get(
            "MATCH_LOCK_MINUTES", Match.DEFAULT_LOCK_MINUTES
        )

    match_date = to_naive_utc(convert_to_utc(kickoff))
    m = Match(
        home_team_id=home.id,
        away_team_id=away.id,
        phase_id=p.id,
        match_date=match_date,
        lock_time=Match.default_lock_time(match_date, lock_minutes),
        stadium=stadium,
        city=city,
    )

    try:
        db.session.add(m)
        db.session.commit()
        click.echo(
            f"✅ Created match {m.id}: {home.code} vs {away.code} "
            f"({p.slug}) at {match_date.isoformat()} UTC"
        )
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error creating match: {str(e)}")
        logging.error(f"Match creation failed - SQL error: {e}")


@match.command()
@click.argument("match_id", type=int)
@click.argument("home_score", type=click.IntRange(min=0))
@click.argument("away_score", type=click.IntRange(min=0))
@with_appcontext
def result(match_id, home_score, away_score):
    """Enter a final score and calculate points"""
    try:
        m, points = finalize_match_result(match_id, home_score, away_score)
    except ProdeError as e:
        click.echo(f"❌ {e.message}")
        return

    click.echo(f"✅ Match {m.id} finished {m.score_display}")
    click.echo(
        f"   {points.updated_count} predictions scored, "
        f"{points.skipped_count} skipped, {points.total_points_awarded} points awarded"
    )


@match.command(name="calculate-points")
@click.argument("match_id", type=int)
@with_appcontext
def calculate_points(match_id):
    """Recalculate points for a finished match"""
    try:
        points = MatchPointsCalculator(db.session).calculate_points(match_id)
    except ProdeError as e:
        click.echo(f"❌ {e.message}")
        return

    click.echo(
        f"✅ Match {match_id}: {points.updated_count} updated, "
        f"{points.skipped_count} skipped"
    )


@match.command(name="recalculate-all")
@with_appcontext
def recalculate_all():
    """Recalculate points for every finished match"""
    summary = MatchPointsCalculator(db.session).recalculate_all()
    click.echo(
        f"✅ {summary['processed']} matches recalculated, {summary['errors']} errors"
    )


@match.command()
@with_appcontext
def lock():
    """Lock matches whose lock time has passed"""
    try:
        locked = Match.lock_due_matches()
        if locked:
            AuditLog.log_action(
                action=AuditLog.LOCK_MATCHES,
                entity_type="Match",
                new_values={"matchIds": [m.id for m in locked]},
            )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error locking matches: {str(e)}")
        return

    click.echo(f"🔒 Locked {len(locked)} matches")


# Leaderboard Commands
@cli.group()
def leaderboard():
    """Leaderboard commands"""
    pass


@leaderboard.command()
@with_appcontext
def refresh():
    """Rebuild the leaderboard for every active user"""
    try:
        count = LeaderboardRefresher(db.session).refresh_all()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error refreshing leaderboard: {str(e)}")
        return

    invalidate_leaderboard_cache()
    click.echo(f"✅ Leaderboard rebuilt for {count} users")


@leaderboard.command()
@click.option("--limit", default=20, show_default=True, help="Rows to show")
@with_appcontext
def show(limit):
    """Print the top of the standings"""
    rows, total = get_leaderboard_page(db.session, page=1, limit=limit)

    if not rows:
        click.echo("Leaderboard is empty.")
        return

    click.echo(f"Leaderboard ({total} players):")
    for row in rows:
        name = row.user.name if row.user else f"user {row.user_id}"
        click.echo(
            f"  #{row.ranking:<3} {name:<25} {row.total_points:>4} pts  "
            f"{row.exact_scores} exact  {row.accuracy_rate:.0%}"
        )


# User Management Commands
@cli.group()
def user():
    """User management commands"""
    pass


@user.command(name="create-admin")
@click.argument("name")
@click.argument("email")
@click.argument("password")
@with_appcontext
def create_admin(name, email, password):
    """Create an admin user"""
    existing = User.query.filter_by(email=email.lower()).first()
    if existing:
        click.echo(f"❌ User with email '{email}' already exists!")
        return

    try:
        u = User(name=name, email=email.lower(), is_active=True, is_admin=True)
        u.set_password(password)

        db.session.add(u)
        db.session.commit()

        click.echo(f"✅ Created admin user '{name}' ({email})")

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Error creating user: {str(e)}")


@user.command(name="list")
@with_appcontext
def list_users():
    """List all users"""
    users = User.query.order_by(User.created_at.desc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("Users:")
    for u in users:
        status = "🟢" if u.is_active else "🔴"
        admin = "👑" if u.is_admin else "  "
        click.echo(f"  {status} {admin} {u.name} ({u.email})")


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("⚽ Prode Application Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    user_count = User.query.filter_by(is_active=True).count()
    click.echo(f"👥 Active Users: {user_count}")

    match_count = Match.query.count()
    finished = Match.query.filter_by(status=Match.FINISHED).count()
    unscored = Match.query.filter(
        Match.status == Match.FINISHED, Match.points_calculated_at.is_(None)
    ).count()
    click.echo(f"⚽ Matches: {finished}/{match_count} finished")
    if unscored:
        click.echo(f"⚠️  {unscored} finished matches without points")

    ranked = LeaderboardCache.query.count()
    click.echo(f"🏆 Leaderboard rows: {ranked}")


if __name__ == "__main__":
    with app.app_context():
        cli()
