from blimp.commands.common import build_client
from blimp.logger import get_console
from blimp.src.errors import BlimpError
from blimp.src.stages.land import Land
from blimp.src.utils.config_loader import load_config

console = get_console()


def run_land_command(args) -> int:
    try:
        client = build_client(load_config())
        land = Land(apps=client, beta=client)

        if args.beta_groups:
            land.engage(args.bundle_id, args.build_id, args.beta_groups)
        if args.changelog:
            land.report(args.localization_ids, args.changelog)
        if args.submit_review:
            land.confirm(args.build_id)
        return 0
    except BlimpError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1
