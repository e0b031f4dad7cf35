from datetime import datetime

import click
from flask.cli import with_appcontext
from flask_migrate import upgrade, migrate, init

from schoolhub import create_app
from schoolhub.seed import seed_data
from schoolhub.services import academic_years, billing, promotions

app = create_app()


def _report(result):
    if result["success"]:
        click.echo(result.get("message") or "OK")
    else:
        raise click.ClickException(f"{result['error_type']}: {result['error']}")
    return result["data"]


@app.cli.command("db-init")
@with_appcontext
def db_init():
    """Initializes migrations directory"""
    init()


@app.cli.command("db-migrate")
@with_appcontext
def db_migrate():
    """Creates a new migration"""
    migrate()


@app.cli.command("db-upgrade")
@with_appcontext
def db_upgrade():
    """Applies migrations"""
    upgrade()


@app.cli.command("seed")
@with_appcontext
def seed():
    """Creates the demo school"""
    school_id = seed_data()
    click.echo(f"Seeded school {school_id}" if school_id else "Demo school already exists")


@app.cli.command("close-year")
@click.argument("school_id", type=int)
@click.argument("year_id", type=int)
@with_appcontext
def close_year(school_id, year_id):
    """Closes an academic year"""
    data = _report(academic_years.close_academic_year(school_id, year_id))
    successor = data.get("new_current_year")
    if successor:
        click.echo(f"Current year is now {successor['name']}")


@app.cli.command("run-promotion")
@click.argument("school_id", type=int)
@click.option("--from-class", "from_class_id", type=int, required=True)
@click.option("--to-class", "to_class_id", type=int, required=True)
@click.option("--from-year", "from_year_id", type=int, required=True)
@click.option("--to-year", "to_year_id", type=int, required=True)
@click.option("--to-section", "to_section_id", type=int, default=None)
@click.option("--min-percentage", type=float, default=33.0, show_default=True)
@with_appcontext
def run_promotion(school_id, from_class_id, to_class_id, from_year_id, to_year_id, to_section_id, min_percentage):
    """Promotes a class into the next year"""
    data = _report(promotions.run_promotion(
        school_id, from_class_id, to_class_id, from_year_id, to_year_id, min_percentage, to_section_id=to_section_id,
    ))
    summary = data["summary"]
    click.echo(f"{summary['promoted_count']} of {summary['total']} promoted")


@app.cli.command("expire-subscriptions")
@with_appcontext
def expire_subscriptions():
    """Expires lapsed subscriptions and deactivates their schools"""
    _report(billing.expire_subscriptions(datetime.utcnow()))
