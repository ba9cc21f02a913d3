from rich.table import Table

from blimp.commands.common import build_client
from blimp.logger import get_console
from blimp.src.appstore.models import UploadConfig, UploadPlatform
from blimp.src.errors import BlimpError
from blimp.src.stages.approach import Approach
from blimp.src.transfers.uploader import AppStoreConnectUploader
from blimp.src.utils.config_loader import (
    get_processing_settings,
    get_upload_settings,
    load_config,
)

console = get_console()


def print_sizes(sizes) -> None:
    table = Table(title="Build sizes")
    table.add_column("Device", style="cyan")
    table.add_column("Download (MB)", justify="right")
    table.add_column("Install (MB)", justify="right")
    for size in sizes:
        table.add_row(
            size.device_name,
            f"{size.download_size / 1_000_000:.1f}",
            f"{size.install_size / 1_000_000:.1f}",
        )
    console.print(table)


def run_approach_command(args) -> int:
    try:
        config = load_config()
        client = build_client(config)
        upload_settings = get_upload_settings(config)
        processing_settings = get_processing_settings(config)

        uploader = AppStoreConnectUploader(
            upload_service=client,
            app_service=client,
            max_concurrent_chunk_uploads=upload_settings.max_concurrent_chunks,
            max_upload_retries=upload_settings.max_retries,
            retry_base_delay=upload_settings.retry_base_delay,
            poll_interval=upload_settings.poll_interval,
            max_poll_attempts=upload_settings.max_poll_attempts,
        )
        approach = Approach(
            uploader=uploader,
            apps=client,
            builds=client,
            ignore_uploader_failure=args.ignore_uploader_failure,
            poll_interval=processing_settings.poll_interval,
            max_attempts=processing_settings.max_attempts,
        )

        if not args.skip_upload:
            approach.start(
                UploadConfig(
                    bundle_id=args.bundle_id,
                    file_path=args.ipa_path,
                    app_version=args.app_version,
                    build_number=args.build_number,
                    platform=UploadPlatform.parse(args.platform),
                ),
                verbose=args.verbose,
            )

        result = approach.hold(args.bundle_id, args.app_version, args.build_number)
        console.print(f"[green]Build id:[/] {result.build_id}")
        console.print(f"[green]Build bundle id:[/] {result.build_bundle_id}")
        console.print(
            f"[green]Localization ids:[/] {' '.join(result.build_localization_ids) or '-'}"
        )

        if args.sizes:
            print_sizes(approach.mass(result.build_bundle_id, args.sizes))
        return 0
    except BlimpError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1
