"""codebox CLI entrypoint."""

from __future__ import annotations

import click

from codebox import __version__


@click.group()
@click.version_option(version=__version__, prog_name="codebox")
def main() -> None:
    """codebox — run source code in throwaway Docker sandboxes."""


# Register subcommands
from codebox.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
