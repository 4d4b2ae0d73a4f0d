"""StackDeck command-line entry point."""

from __future__ import annotations

import click

from stackdeck import __version__
from stackdeck.cli.commands.aws import aws


@click.group()
@click.version_option(version=__version__, prog_name="stackdeck")
def main() -> None:
    """StackDeck - provision multi-tier AWS deployments for a project.

    Example:

        stackdeck aws init

        stackdeck aws list
    """


main.add_command(aws)


if __name__ == "__main__":  # pragma: no cover
    main()
