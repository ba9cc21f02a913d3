import argparse
from pathlib import Path

from blimp.src.appstore.models import CertificateType, DeviceStatus, Platform, ProfileKind

PLATFORM_CHOICES = [platform.value for platform in Platform]
PROFILE_KIND_CHOICES = [kind.value for kind in ProfileKind]


def add_approach_arguments(parser):
    """Add upload and processing arguments to an existing parser."""
    parser.add_argument("ipa_path", type=Path, help="Path to the IPA file to upload")
    parser.add_argument("--bundle-id", required=True, help="Bundle identifier of the app")
    parser.add_argument(
        "--app-version",
        required=True,
        help="Marketing version (CFBundleShortVersionString)",
    )
    parser.add_argument(
        "--build-number", required=True, help="Build number (CFBundleVersion)"
    )
    parser.add_argument(
        "--platform",
        choices=["ios", "macos", "tvos", "visionos"],
        default="ios",
        help="Upload platform [default: ios]",
    )
    parser.add_argument(
        "--ignore-uploader-failure",
        action="store_true",
        help="Keep waiting for processing even if the upload tool reports a failure [default: disabled]",
    )
    parser.add_argument(
        "--skip-upload",
        action="store_true",
        help="Only wait for an already uploaded build to finish processing [default: disabled]",
    )
    parser.add_argument(
        "--sizes",
        nargs="*",
        metavar="DEVICE_MODEL",
        help="Print download/install sizes for these device models (e.g. iPhone15,2)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Print per-chunk upload progress"
    )


def add_land_arguments(parser):
    parser.add_argument("--bundle-id", required=True, help="Bundle identifier of the app")
    parser.add_argument("--build-id", required=True, help="Processed build id")
    parser.add_argument(
        "--beta-groups",
        nargs="+",
        default=[],
        metavar="GROUP",
        help="Beta group names to assign the build to",
    )
    parser.add_argument(
        "--localization-ids",
        nargs="*",
        default=[],
        metavar="ID",
        help="Beta build localization ids (as printed by approach)",
    )
    parser.add_argument("--changelog", help="'What to Test' text for the build")
    parser.add_argument(
        "--submit-review",
        action="store_true",
        help="Submit the build for TestFlight external review [default: disabled]",
    )


def _add_storage_arguments(parser):
    parser.add_argument("--storage-path", type=Path, help="Local checkout of the storage repository")
    parser.add_argument("--storage-remote", help="Git remote of the storage repository")
    parser.add_argument(
        "--push",
        action="store_true",
        default=None,
        help="Push storage commits to the remote [default: from config]",
    )


def _add_profile_target_arguments(parser):
    parser.add_argument("--platform", choices=PLATFORM_CHOICES, default="ios")
    parser.add_argument(
        "--type",
        dest="profile_kind",
        choices=PROFILE_KIND_CHOICES,
        default="development",
        help="Profile kind [default: development]",
    )


def add_maintenance_arguments(parser, formatter_class=argparse.HelpFormatter):
    """Add the maintenance subcommands (certificates, devices, profiles, storage)."""
    subparsers = parser.add_subparsers(dest="maintenance_command")

    sync_parser = subparsers.add_parser(
        "sync",
        help="Ensure a certificate and profiles exist for bundle ids",
        formatter_class=formatter_class,
    )
    sync_parser.add_argument("bundle_ids", nargs="+", help="Bundle identifiers to sync")
    _add_profile_target_arguments(sync_parser)
    sync_parser.add_argument(
        "--force", action="store_true", help="Regenerate profiles that already exist"
    )
    sync_parser.add_argument("--passphrase", help="Storage passphrase [default: BLIMP_PASSPHRASE]")
    _add_storage_arguments(sync_parser)

    certs_parser = subparsers.add_parser(
        "certs", help="Manage signing certificates", formatter_class=formatter_class
    )
    certs_sub = certs_parser.add_subparsers(dest="certs_command")

    certs_list = certs_sub.add_parser("list", help="List certificates", formatter_class=formatter_class)
    certs_list.add_argument(
        "--type",
        dest="certificate_type",
        type=CertificateType.parse,
        help="Filter by certificate type (development, distribution or an API value)",
    )

    certs_generate = certs_sub.add_parser(
        "generate", help="Create and store a new certificate", formatter_class=formatter_class
    )
    certs_generate.add_argument("--platform", choices=PLATFORM_CHOICES, default="ios")
    certs_generate.add_argument(
        "--type",
        dest="certificate_type",
        type=CertificateType.parse,
        default=CertificateType.DEVELOPMENT,
        help="Certificate type [default: development]",
    )
    certs_generate.add_argument("--passphrase", help="Storage passphrase [default: BLIMP_PASSPHRASE]")
    _add_storage_arguments(certs_generate)

    certs_revoke = certs_sub.add_parser(
        "revoke", help="Revoke a certificate", formatter_class=formatter_class
    )
    certs_revoke.add_argument("certificate_id", help="Certificate id to revoke")

    devices_parser = subparsers.add_parser(
        "devices", help="Manage registered devices", formatter_class=formatter_class
    )
    devices_sub = devices_parser.add_subparsers(dest="devices_command")

    devices_list = devices_sub.add_parser("list", help="List devices", formatter_class=formatter_class)
    devices_list.add_argument("--platform", choices=PLATFORM_CHOICES)
    devices_list.add_argument("--status", choices=[status.value for status in DeviceStatus])

    devices_register = devices_sub.add_parser(
        "register", help="Register a device", formatter_class=formatter_class
    )
    devices_register.add_argument("name", help="Device name")
    devices_register.add_argument("udid", help="Device UDID")
    devices_register.add_argument("--platform", choices=PLATFORM_CHOICES, default="ios")

    profiles_parser = subparsers.add_parser(
        "profiles", help="Manage provisioning profiles", formatter_class=formatter_class
    )
    profiles_sub = profiles_parser.add_subparsers(dest="profiles_command")

    profiles_install = profiles_sub.add_parser(
        "install",
        help="Install stored profiles into ~/Library/MobileDevice",
        formatter_class=formatter_class,
    )
    _add_profile_target_arguments(profiles_install)
    profiles_install.add_argument(
        "--bundle-id", dest="bundle_id_pattern", help="Bundle id or glob pattern (com.example.*)"
    )
    _add_storage_arguments(profiles_install)

    profiles_list = profiles_sub.add_parser(
        "list", help="List profiles on App Store Connect", formatter_class=formatter_class
    )
    profiles_list.add_argument("--name", help="Filter by profile name")

    profiles_remove = profiles_sub.add_parser(
        "remove", help="Delete a profile from App Store Connect", formatter_class=formatter_class
    )
    profiles_remove.add_argument("name", help="Profile name to remove")

    storage_parser = subparsers.add_parser(
        "storage", help="Manage the storage repository", formatter_class=formatter_class
    )
    storage_sub = storage_parser.add_subparsers(dest="storage_command")

    storage_init = storage_sub.add_parser(
        "init", help="Clone or initialize the storage repository", formatter_class=formatter_class
    )
    _add_storage_arguments(storage_init)

    storage_remote = storage_sub.add_parser(
        "set-remote", help="Set the storage git remote", formatter_class=formatter_class
    )
    storage_remote.add_argument("url", help="Git remote url")
    _add_storage_arguments(storage_remote)

    return subparsers
