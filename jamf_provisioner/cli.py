"""
Jamf Provisioner command line.

Usage:
    jamf-provisioner provision [--url URL] [--username NAME] [--site SITE]
                               [--latest-version VERSION]
                               [--enable-policy | --keep-policy-disabled]
                               [--teardown-script PATH | --no-teardown-script]
                               [--yes]
    jamf-provisioner teardown ARTIFACT

Exit codes:
    0  provisioning completed
    1  error (configuration, server)
    2  credentials rejected or privileges missing
    3  cancelled by the operator
    4  a create failed and everything was rolled back
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional

from dotenv import load_dotenv

from jamf_provisioner import __version__, privileges, sites
from jamf_provisioner.audit_log import audit, audit_section, close_audit_log, open_audit_log
from jamf_provisioner.config.settings import ProvisionerSettings, get_settings, normalize_server_url
from jamf_provisioner.dialogs import Dialog
from jamf_provisioner.errors import (
    AuthorizationError,
    ConfigurationError,
    ExitCode,
    ProvisionerError,
    UserCancelled,
    exit_code_for,
)
from jamf_provisioner.jamf_client import Credential, JamfClient
from jamf_provisioner.logging_config import configure_logging
from jamf_provisioner.provisioning.ledger import RunStatus
from jamf_provisioner.provisioning.pipeline import PipelineOptions, ProvisioningPipeline
from jamf_provisioner.provisioning.teardown import build_descriptor, emit, load_artifact, run_from_artifact
from jamf_provisioner.releases import fetch_latest_version

logger = logging.getLogger(__name__)

WELCOME = (
    "Welcome to Jamf Provisioner!\n\n"
    "This will create a workflow on your Jamf Pro server that stages the latest "
    "macOS installer on your computers and offers a Self Service policy to wipe "
    "and reinstall them.\n\n"
    "The account you use needs these privileges:\n{requirements}\n\n"
    "A log of every action is written to {log_path}"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jamf-provisioner",
        description="Provision a macOS reinstall workflow on Jamf Pro",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    provision = subparsers.add_parser("provision", help="Create the provisioning workflow")
    provision.add_argument("--url", help="Jamf Pro server URL (e.g. https://my.jamf.pro)")
    provision.add_argument("--username", help="Jamf Pro account name")
    provision.add_argument("--latest-version", help="macOS version to target instead of looking it up")
    provision.add_argument("--site", help="Site to assign the workflow to")
    enable = provision.add_mutually_exclusive_group()
    enable.add_argument(
        "--enable-policy", dest="enable_policy", action="store_true", default=None,
        help="Enable the staging policy without asking",
    )
    enable.add_argument(
        "--keep-policy-disabled", dest="enable_policy", action="store_false",
        help="Leave the staging policy disabled without asking",
    )
    artifact = provision.add_mutually_exclusive_group()
    artifact.add_argument("--teardown-script", type=Path, help="Where to save the teardown script")
    artifact.add_argument(
        "--no-teardown-script", action="store_true",
        help="Do not save a teardown script",
    )
    provision.add_argument(
        "--yes", "-y", action="store_true",
        help="Skip the welcome and final confirmation prompts",
    )

    teardown = subparsers.add_parser("teardown", help="Run a saved teardown script")
    teardown.add_argument("artifact", type=Path, help="Teardown script written by provision")
    return parser


def _default_client_factory(settings: ProvisionerSettings) -> Callable[[str, Credential], JamfClient]:
    def factory(server_url: str, credential: Credential) -> JamfClient:
        return JamfClient(
            server_url,
            credential,
            timeout=settings.request_timeout,
            verify_ssl=settings.verify_ssl,
        )
    return factory


def _resolve_server_url(args: argparse.Namespace, settings: ProvisionerSettings, dialog) -> str:
    url = args.url or settings.server_url
    if not url:
        url = dialog.ask_text("Jamf Pro server URL (e.g. https://my.jamf.pro)")
    try:
        url = normalize_server_url(url)
    except ValueError as e:
        raise ConfigurationError(str(e))
    if not url:
        raise ConfigurationError("A Jamf Pro server URL is required")
    return url


def _resolve_latest_version(
    args: argparse.Namespace,
    settings: ProvisionerSettings,
    dialog,
    release_lookup: Callable[[str], Optional[str]],
) -> str:
    version = args.latest_version or settings.latest_macos_version
    if not version:
        with dialog.waiting("Please wait", "Looking up the latest macOS release..."):
            version = release_lookup(settings.releases_feed_url)
    if not version:
        version = dialog.ask_text("Could not look up the latest macOS release. Which version should be targeted?")
    if not version:
        raise ConfigurationError("A target macOS version is required")
    audit("Targeting macOS version %s", version)
    return version


def _leftover_message(report) -> str:
    leftover = ", ".join(f"{r.resource_type.label} {r.resource_id}" for r, _ in report.failed)
    return f"\n\nThese objects could not be deleted and must be removed manually: {leftover}"


def run_provision(
    args: argparse.Namespace,
    settings: ProvisionerSettings,
    dialog=None,
    client_factory: Optional[Callable[[str, Credential], object]] = None,
    release_lookup: Callable[[str], Optional[str]] = fetch_latest_version,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    The interactive provisioning session.

    Returns:
        Process exit code
    """
    dialog = dialog or Dialog()
    client_factory = client_factory or _default_client_factory(settings)
    log_path = Path(settings.log_path).expanduser()

    handler = open_audit_log(log_path, title="JAMF PROVISIONER", mode="w")
    client = None
    try:
        if not args.yes and not dialog.confirm(
            WELCOME.format(requirements=privileges.describe_requirements(), log_path=log_path),
        ):
            raise UserCancelled()

        server_url = _resolve_server_url(args, settings, dialog)
        username = args.username or settings.username or dialog.ask_text("Jamf Pro username")
        if not username:
            raise ConfigurationError("A Jamf Pro username is required")
        password = dialog.ask_secret(f"Password for {username}")
        credential = Credential(username, password)
        audit("Server %s, user %s", server_url, username)

        client = client_factory(server_url, credential)
        with dialog.waiting("Please wait", "Checking account privileges..."):
            privileges.validate(client, credential)

        site = sites.resolve(client, dialog, preselected=args.site)
        latest_version = _resolve_latest_version(args, settings, dialog, release_lookup)

        if not args.yes and not dialog.confirm(
            f"Ready to create the provisioning workflow on {server_url}"
            + (f" in site {site.name}" if site else "")
            + f", targeting macOS {latest_version}.",
        ):
            raise UserCancelled()

        pipeline = ProvisioningPipeline(
            client,
            PipelineOptions(
                latest_version=latest_version,
                site=site,
                os_floor=settings.os_floor,
                propagation_interval=settings.propagation_interval,
                propagation_attempts=settings.propagation_attempts,
                settle_seconds=settings.settle_seconds,
            ),
            sleep=sleep,
        )
        with dialog.waiting("Please wait", "Creating the provisioning workflow..."):
            result = pipeline.run()

        if result.status is RunStatus.CANCELLED:
            message = "Provisioning was interrupted and every object created so far was deleted again."
            if result.rollback is not None and not result.rollback.succeeded:
                message += _leftover_message(result.rollback)
            dialog.notify(f"{message}\n\nSee {log_path} for details.")
            return int(ExitCode.CANCELLED)

        if not result.succeeded:
            message = f"An error occurred and every object created was deleted again.\n\n{result.error}"
            if result.rollback is not None and not result.rollback.succeeded:
                message += _leftover_message(result.rollback)
            dialog.notify(f"{message}\n\nSee {log_path} for details.")
            return int(ExitCode.ROLLED_BACK)

        dialog.notify(
            f"The provisioning workflow was created. {result.target_count} computer(s) "
            f"are currently targeted to download the macOS {latest_version} installer."
        )

        enable = args.enable_policy
        if enable is None:
            enable = not args.yes and dialog.confirm(
                "The staging policy was created disabled. Enable it now?",
                proceed="Enable",
                cancel="Keep Disabled",
            )
        if enable:
            if pipeline.enable_policy(result.ledger):
                audit("Staging policy enabled by user")
            else:
                dialog.notify("The staging policy could not be enabled. Enable it in Jamf Pro instead.")
        else:
            audit("Staging policy left disabled")

        teardown_path = None
        if not args.no_teardown_script:
            save = args.yes or args.teardown_script is not None or dialog.confirm(
                "Save a script that deletes everything that was just created?",
                proceed="Save",
                cancel="Skip",
            )
            if save:
                teardown_path = emit(
                    build_descriptor(result.ledger, server_url, log_path),
                    args.teardown_script or settings.teardown_path,
                )

        audit_section("FINISHED")
        summary = f"All done. A log of this run is at {log_path}."
        if teardown_path is not None:
            summary += f"\n\nTo remove the workflow later, run {teardown_path}."
        dialog.notify(summary)
        return int(ExitCode.SUCCESS)

    except AuthorizationError as e:
        audit("Exiting: %s", e)
        dialog.notify(
            f"{e}\n\nThe account needs:\n{privileges.describe_requirements()}\n\nSee {log_path}."
        )
        return exit_code_for(e)
    except ProvisionerError as e:
        audit("Exiting: %s", e)
        dialog.notify(f"{e}\n\nSee {log_path}.")
        return exit_code_for(e)
    except KeyboardInterrupt:
        audit("Exiting: interrupted by user")
        dialog.notify(f"Cancelled. See {log_path}.")
        return int(ExitCode.CANCELLED)
    except Exception as e:
        audit("Unexpected error: %s", e)
        code = exit_code_for(e)
        dialog.notify(f"An unexpected error occurred: {e}\n\nSee {log_path} for details.")
        return code
    finally:
        if client is not None and hasattr(client, "close"):
            client.close()
        close_audit_log(handler)


def run_teardown_command(args: argparse.Namespace) -> int:
    try:
        descriptor = load_artifact(args.artifact)
    except ProvisionerError as e:
        logger.error(str(e))
        return exit_code_for(e)
    return run_from_artifact(descriptor, args.artifact)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValueError as e:
        # pydantic ValidationError is a ValueError
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return int(ExitCode.ERROR)

    configure_logging(settings.log_level, settings.log_format)

    if args.command == "teardown":
        return run_teardown_command(args)
    return run_provision(args, settings)


if __name__ == "__main__":
    sys.exit(main())
