from __future__ import annotations

import csv
import json

import click
from flask import current_app, url_for
from flask.cli import AppGroup

from .draw import InvalidInput
from .security import DecodeFailure, decode_draw, draw_passphrase, encode_draw
from .services.assignments import AssignmentError
from .services.draws import build_couples, build_roster, create_draw, publish_draw


draw_cli = AppGroup("draw", help="Run and inspect draws from the command line.")


DEFAULT_BASE_URL = "http://localhost:5000"


def _roster_fields(data) -> tuple[str, str, list, list]:
    if not isinstance(data, dict):
        raise InvalidInput("Roster must be a JSON object.")
    organizer = data.get("organizer") or ""
    name = data.get("name") or ""
    names = data.get("participants") or []
    pairs = data.get("couples") or []
    if not isinstance(organizer, str) or not isinstance(name, str):
        raise InvalidInput("Roster \"organizer\" and \"name\" must be text.")
    if not isinstance(names, list) or not isinstance(pairs, list):
        raise InvalidInput("Roster \"participants\" and \"couples\" must be lists.")
    return organizer, name, names, pairs


def _link(endpoint: str, base_url: str | None, **values) -> str:
    # no request outside the server, so fake one rooted at the public URL
    with current_app.test_request_context(base_url=base_url or DEFAULT_BASE_URL):
        return url_for(endpoint, _external=True, **values)


@draw_cli.command("run")
@click.argument("roster", type=click.File("r", encoding="utf-8"))
@click.option("--passphrase", default=None, help="Passphrase for the token (defaults to the app's).")
@click.option("--base-url", default=None, help="Public URL prefix used in printed links.")
@click.option("--output", type=click.Path(dir_okay=False, writable=True), default=None,
              help="Write a CSV of each participant's personal reveal link.")
def run_draw(roster, passphrase, base_url, output):
    """Draw from a ROSTER JSON file and print the access link.

    ROSTER looks like {"organizer": "...", "name": "...",
    "participants": ["Ann", ...], "couples": [["Ann", "Bob"], ...]}.
    """
    try:
        data = json.load(roster)
    except ValueError as e:
        raise click.ClickException(f"Roster is not valid JSON: {e}") from e

    if passphrase is not None and passphrase == draw_passphrase():
        passphrase = None

    try:
        organizer, name, names, pairs = _roster_fields(data)
        participants = build_roster(names)
        couples = build_couples(pairs, participants)
        record = create_draw(
            organizer,
            name,
            participants,
            couples,
            max_attempts=current_app.config["SANTA_MAX_ATTEMPTS"],
        )
        if passphrase is None:
            record, token = publish_draw(record, draw_passphrase())
    except (InvalidInput, AssignmentError) as e:
        raise click.ClickException(str(e)) from e

    base_url = base_url or current_app.config.get("SANTA_BASE_URL")
    if passphrase is not None:
        # Not stored: this instance could not open the links or the code.
        token = encode_draw(record, passphrase)
        click.echo(
            "Warning: custom passphrase used; the draw was not stored and the links "
            "only open on an instance whose SANTA_DRAW_PASSPHRASE matches it.",
            err=True,
        )

    click.echo(f"Draw code: {record.code}")
    click.echo(f"Access link: {_link('draws.access', base_url, token=token)}")

    if output:
        with open(output, "w", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh)
            writer.writerow(["giver", "link"])
            for p in record.participants:
                writer.writerow([p.name, _link("draws.reveal", base_url, token=token, participant_id=p.id)])
        click.echo(f"Wrote {len(record.participants)} links to {output}")


@draw_cli.command("show")
@click.argument("token")
@click.option("--passphrase", default=None, help="Passphrase for the token (defaults to the app's).")
def show_draw(token, passphrase):
    """Decode TOKEN and print the draw summary. Assignments are not printed."""
    try:
        record = decode_draw(token, passphrase if passphrase is not None else draw_passphrase())
    except DecodeFailure as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Draw: {record.draw_name}")
    click.echo(f"Organizer: {record.organizer_name}")
    click.echo(f"Code: {record.code}")
    click.echo(f"Created: {record.created_at.isoformat()}")
    click.echo("Participants:")
    for p in record.participants:
        click.echo(f"  - {p.name}")
