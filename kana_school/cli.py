from typing import Any

import click
from flask import current_app

from . import db, stats


def _store() -> db.Store:
    return current_app.extensions["kana_school.store"]


def register_commands(cli: Any) -> None:
    """Attach the maintenance commands to a click group (normally ``app.cli``)."""

    @cli.command("init-db")  # type: ignore[misc]
    @click.option("--seed/--no-seed", default=True, help="Load the kana catalog if the table is empty")
    def init_db(seed: bool) -> None:
        """Create all tables."""
        store = _store()
        db.init_db(store)
        click.echo("Database initialized.")
        if seed:
            added = db.seed_kanas(store)
            click.echo(f"Seeded {added} kanas." if added else "Kana catalog already present (skipped).")

    @cli.command("seed-kanas")  # type: ignore[misc]
    def seed_kanas() -> None:
        """Load the kana catalog if the table is empty."""
        added = db.seed_kanas(_store())
        if added:
            click.echo(f"Seeded {added} kanas.")
        else:
            click.echo("Kana catalog already present (skipped).")

    @cli.command("list-kanas")  # type: ignore[misc]
    @click.option("--script", type=click.Choice(["hiragana", "katakana", "all"]), default="all")
    def list_kanas(script: str) -> None:
        """Print the kana catalog."""
        store = _store()
        if script == "hiragana":
            kanas = db.get_hiraganas(store)
        elif script == "katakana":
            kanas = db.get_katakanas(store)
        else:
            kanas = db.get_all_kanas(store)
        for kana in kanas:
            click.echo(f"{kana.id:4d}  {kana.unicode}  {kana.reading:<4} line={kana.consonant_line or '-'} mod={kana.mod}")
        click.echo(f"{len(kanas)} kanas.")

    @cli.command("stats")  # type: ignore[misc]
    def show_stats() -> None:
        """Print sitewide statistics."""
        store = _store()
        home = stats.home_stats(store)
        users = stats.users_page_stats(store)
        click.echo(f"Users: {home['allTime']['userCount']} ({home['lastMonth']['accountsCreated']} in the last 30 days)")
        click.echo(f"Sessions: {home['allTime']['sessionCount']} ({home['lastMonth']['sessionCount']} in the last 30 days)")
        click.echo(f"Correct answers: {home['allTime']['correctPercentage']}% all time, "
                   f"{home['lastMonth']['correctPercentage']}% last 30 days")
        click.echo(f"Sessions per user: avg {users['averageSessionsPerUser']}, max {users['maxSessionsForUser']}")
