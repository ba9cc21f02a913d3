from rich.table import Table

from blimp.commands.common import build_client, build_store, resolve_storage
from blimp.logger import get_console
from blimp.src.appstore.models import DeviceStatus, Platform, ProfileKind
from blimp.src.core.cert_generator import OpenSSLCertificateGenerator
from blimp.src.core.encryption import FileEncrypter
from blimp.src.errors import BlimpError, NotFoundError
from blimp.src.provisioning.certificate_manager import CertificateManager
from blimp.src.provisioning.coordinator import ProvisioningCoordinator
from blimp.src.provisioning.profile_installer import ProfileInstaller
from blimp.src.utils.config_loader import load_config, resolve_passphrase

console = get_console()


def _profile_target(args):
    platform = Platform.parse(args.platform)
    return platform, ProfileKind(args.profile_kind).profile_type(platform)


def run_sync(args, config) -> int:
    platform, profile_type = _profile_target(args)
    storage = resolve_storage(args, config)
    coordinator = ProvisioningCoordinator(
        api=build_client(config),
        store=build_store(storage),
        encrypter=FileEncrypter(),
        generator=OpenSSLCertificateGenerator(),
        passphrase=resolve_passphrase(args.passphrase),
        push=storage.push,
    )
    certificate_id = coordinator.sync(platform, profile_type, args.bundle_ids, force=args.force)
    console.print(f"[green]Profiles signed with certificate {certificate_id}")
    return 0


def run_certs(args, config) -> int:
    client = build_client(config)

    if args.certs_command == "list":
        certificates = client.list_certificates(args.certificate_type)
        table = Table(title="Certificates")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Type")
        table.add_column("Expires")
        for cert in certificates:
            table.add_row(
                cert.id,
                cert.name,
                cert.certificate_type.value if cert.certificate_type else "-",
                cert.expiration_date.strftime("%Y-%m-%d") if cert.expiration_date else "-",
            )
        console.print(table)
        return 0

    if args.certs_command == "generate":
        storage = resolve_storage(args, config)
        manager = CertificateManager(
            certificates=client,
            store=build_store(storage),
            encrypter=FileEncrypter(),
            generator=OpenSSLCertificateGenerator(),
            passphrase=resolve_passphrase(args.passphrase),
            push=storage.push,
        )
        manager.create_and_store_certificate(args.certificate_type, Platform.parse(args.platform))
        return 0

    if args.certs_command == "revoke":
        client.delete_certificate(args.certificate_id)
        console.print(f"[green]Revoked certificate {args.certificate_id}")
        return 0

    console.print("[red]Choose one of: list, generate, revoke")
    return 1


def run_devices(args, config) -> int:
    client = build_client(config)

    if args.devices_command == "list":
        devices = client.list_devices(
            platform=Platform.parse(args.platform) if args.platform else None,
            status=DeviceStatus(args.status) if args.status else None,
        )
        table = Table(title="Devices")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("UDID")
        table.add_column("Platform")
        table.add_column("Status")
        for device in devices:
            table.add_row(
                device.id,
                device.name,
                device.udid,
                device.platform.display_name if device.platform else "-",
                device.status.value,
            )
        console.print(table)
        return 0

    if args.devices_command == "register":
        device = client.register_device(args.name, args.udid, Platform.parse(args.platform))
        console.print(f"[green]Registered device {device.name}:[/] {device.id}")
        return 0

    console.print("[red]Choose one of: list, register")
    return 1


def run_profiles(args, config) -> int:
    if args.profiles_command == "install":
        platform, profile_type = _profile_target(args)
        installer = ProfileInstaller(build_store(resolve_storage(args, config)))
        installed = installer.install_profiles(platform, profile_type, args.bundle_id_pattern)
        for profile in installed:
            console.print(f"[green]{profile.bundle_id}[/] -> {profile.destination_path}")
        return 0

    if args.profiles_command == "list":
        profiles = build_client(config).list_profiles(name=args.name)
        if not profiles:
            console.print("[yellow]No profiles found")
            return 0
        table = Table(title="Profiles")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Type")
        table.add_column("Expires")
        for profile in profiles:
            table.add_row(
                profile.id,
                profile.name,
                profile.profile_type.value if profile.profile_type else "unknown",
                profile.expiration_date.strftime("%Y-%m-%d") if profile.expiration_date else "-",
            )
        console.print(table)
        return 0

    if args.profiles_command == "remove":
        client = build_client(config)
        profiles = client.list_profiles(name=args.name)
        if not profiles:
            raise NotFoundError(f"Profile '{args.name}' not found")
        client.delete_profile(profiles[0].id)
        console.print(f"[green]Profile '{args.name}' removed")
        return 0

    console.print("[red]Choose one of: install, list, remove")
    return 1


def run_storage(args, config) -> int:
    store = build_store(resolve_storage(args, config))

    if args.storage_command == "init":
        store.clone_or_pull()
        console.print(f"[green]Storage ready at {store.path}")
        return 0

    if args.storage_command == "set-remote":
        store.set_remote(args.url)
        return 0

    console.print("[red]Choose one of: init, set-remote")
    return 1


HANDLERS = {
    "sync": run_sync,
    "certs": run_certs,
    "devices": run_devices,
    "profiles": run_profiles,
    "storage": run_storage,
}


def run_maintenance_command(args) -> int:
    handler = HANDLERS.get(args.maintenance_command)
    if handler is None:
        console.print("[red]Choose a maintenance command: sync, certs, devices, profiles, storage")
        return 1

    try:
        return handler(args, load_config())
    except BlimpError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1
