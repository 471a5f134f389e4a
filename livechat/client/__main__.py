import logging

import click

from config import Config
from .api import LiveChatAPI
from .console import ConsoleView
from .controller import ChatController
from .storage import LocalStorage

HELP = """Commands:
  /open          open the chat panel
  /close         close the chat panel (stops polling)
  /email ADDR    submit your email to create the ticket
  /new           start a new ticket after the current one was closed
  /quit          leave
Anything else is sent as a message."""


@click.command()
@click.option("--api-url", default=Config.LIVECHAT_API_URL, show_default=True, help="Live chat API base URL.")
@click.option("--state-file", default=Config.LIVECHAT_STATE_FILE, show_default=True, help="Durable session state.")
@click.option("--poll-interval", default=Config.POLL_INTERVAL_SECONDS, show_default=True, type=float)
def main(api_url, state_file, poll_interval):
    """Terminal live chat widget."""
    logging.basicConfig(level=Config.LOG_LEVEL)

    controller = ChatController(
        api=LiveChatAPI(api_url),
        storage=LocalStorage(state_file),
        view=ConsoleView(),
        poll_interval=poll_interval,
    )
    controller.init_session()
    controller.open_panel()

    try:
        while True:
            line = click.prompt("", prompt_suffix="> ", default="", show_default=False).strip()
            if not line:
                continue
            command, _, arg = line.partition(" ")
            if command == "/quit":
                break
            elif command == "/help":
                click.echo(HELP)
            elif command == "/open":
                controller.open_panel()
            elif command == "/close":
                controller.close_panel()
            elif command == "/email":
                controller.submit_email(arg)
            elif command == "/new":
                if not controller.start_new_ticket():
                    click.echo("A new ticket can only be started once the current one is closed.")
            else:
                controller.submit_message(line)
    except (click.Abort, EOFError):
        pass
    finally:
        controller.stop_polling()


if __name__ == "__main__":
    main()
