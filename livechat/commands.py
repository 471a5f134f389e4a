import click
from flask import current_app
from flask.cli import AppGroup

from .database import db
from .models import Ticket
from .utils import load_json_document, write_json_document

livechat_cli = AppGroup("livechat", help="Live chat ticket store maintenance.")


def _store():
    return current_app.extensions["livechat_gateway"].store


@livechat_cli.command("import-chats")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def import_chats(path):
    """Merge a chats.json document into the ticket store."""
    incoming = load_json_document(path)
    if not incoming:
        raise click.ClickException(f"No chats found in {path}")

    if not _store().import_tickets(incoming):
        raise click.ClickException("Failed to save chats, see log for details")
    total = db.session.query(Ticket).count()
    click.echo(f"Imported {len(incoming)} chat(s); store now holds {total}.")


@livechat_cli.command("export-chats")
@click.argument("path", type=click.Path(dir_okay=False, writable=True))
def export_chats(path):
    """Write every ticket to a chats.json document."""
    chats = _store().load()
    write_json_document(path, chats)
    click.echo(f"Exported {len(chats)} chat(s) to {path}.")
