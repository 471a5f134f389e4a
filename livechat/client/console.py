import click

from .controller import ChatView


class ConsoleView(ChatView):
    """Renders the chat widget as coloured terminal lines."""

    def __init__(self, email_label="You"):
        self.email_label = email_label

    def add_message(self, text, is_user=False, timestamp=None):
        who = self.email_label if is_user else "Support"
        color = "cyan" if is_user else "green"
        stamp = f" [{timestamp[11:19]}]" if timestamp else ""
        click.secho(f"{who}{stamp}: {text}", fg=color)

    def clear_messages(self):
        click.echo("-" * 40)

    def show_input(self):
        click.secho("(type a message, /help for commands)", dim=True)

    def show_email_prompt(self, prefill=None):
        hint = f" (last used: {prefill})" if prefill else ""
        click.secho(f"Please enter your email with /email <address>{hint}", fg="yellow")

    def set_email_submit_enabled(self, enabled, label):
        if not enabled:
            click.secho(label, dim=True)

    def alert(self, text):
        click.secho(text, fg="red", bold=True)

    def set_panel_open(self, is_open):
        click.secho("[chat opened]" if is_open else "[chat closed]", dim=True)

    def show_badge(self):
        click.secho("● new reply from support (/open to read)", fg="magenta")

    def show_ticket_closed(self):
        click.secho("This ticket has been closed by our support team.", fg="yellow")
        click.secho("Type /new to start a new ticket.", fg="yellow")
