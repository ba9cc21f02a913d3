import argparse
import sys

from dotenv import load_dotenv
from rich.console import Console
from rich.text import Text
from rich.theme import Theme
from rich_argparse import RichHelpFormatter

from blimp.arguments import add_approach_arguments, add_land_arguments, add_maintenance_arguments

__version__ = "0.1.0"
APP_DESCRIPTION = "Upload, process and distribute builds through App Store Connect"


class BlimpHelpFormatter(RichHelpFormatter):
    """Formatter for the blimp CLI with rich styling."""

    def __init__(self, prog):
        super().__init__(prog, max_help_position=30, width=100)
        self.console = Console(
            theme=Theme(
                {
                    "command": "bold cyan",
                    "argument": "green",
                    "option": "yellow",
                    "title": "bold magenta",
                }
            )
        )

    def start_section(self, heading):
        heading_text = Text(heading, style="title")
        super().start_section(str(heading_text))


def create_parser():
    parser = argparse.ArgumentParser(
        prog="blimp",
        description=f"blimp: {APP_DESCRIPTION}",
        formatter_class=BlimpHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"blimp {__version__}")

    subparsers = parser.add_subparsers(dest="command")

    approach_parser = subparsers.add_parser(
        "approach",
        help="Upload a build and wait for App Store Connect to process it",
        formatter_class=BlimpHelpFormatter,
    )
    add_approach_arguments(approach_parser)

    land_parser = subparsers.add_parser(
        "land",
        help="Distribute a processed build through TestFlight",
        formatter_class=BlimpHelpFormatter,
    )
    add_land_arguments(land_parser)

    maintenance_parser = subparsers.add_parser(
        "maintenance",
        help="Certificates, profiles, devices and storage",
        formatter_class=BlimpHelpFormatter,
    )
    add_maintenance_arguments(maintenance_parser, formatter_class=BlimpHelpFormatter)

    return parser


def main(argv=None):
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "approach":
        from blimp.commands.approach import run_approach_command

        return run_approach_command(args)
    elif args.command == "land":
        from blimp.commands.land import run_land_command

        return run_land_command(args)
    elif args.command == "maintenance":
        from blimp.commands.maintenance import run_maintenance_command

        return run_maintenance_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
