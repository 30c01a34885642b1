"""SOS Relay CLI entry point"""

import click

from .. import __version__
from .command import init, start, stop, status


@click.group(
    name="sosrelay",
    help="SOS Relay - offline emergency alert relay for local networks",
)
@click.version_option(__version__, prog_name="sosrelay")
def main():
    """Main CLI entry point"""
    pass


main.add_command(init)
main.add_command(start)
main.add_command(stop)
main.add_command(status)


if __name__ == "__main__":
    main()
