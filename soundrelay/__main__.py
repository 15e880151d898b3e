"""
Console entry point: runs the typer app and turns escaped errors into a
readable panel and an exit status.
"""

import asyncio
import logging
import sys

import typer
from rich.console import Console

from soundrelay.cli.app import app
from soundrelay.cli.formatters import format_error_with_suggestions
from soundrelay.exceptions import ConfigurationError, SoundRelayError

log = logging.getLogger("soundrelay")

EXIT_FAILURE = 1
EXIT_CONFIG = 2


def main() -> None:
    console = Console(stderr=True)
    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Interrupted, pending work was dropped.[/yellow]")
        sys.exit(130)
    except ConfigurationError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(EXIT_CONFIG)
    except SoundRelayError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(EXIT_FAILURE)
    except Exception as e:
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        log.debug("Unhandled exception", exc_info=True)
        sys.exit(EXIT_FAILURE)
    finally:
        logging.shutdown()


if __name__ == "__main__":
    main()
