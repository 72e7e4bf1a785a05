"""
Operator-facing audit log.

A plain text file with one timestamped line per significant action: call
issued, resource created, error observed, rollback action taken. The file
is truncated at the start of every run and flushed after every line, so a
run killed mid-call still leaves a diagnosable trail.

Usage:
    from jamf_provisioner.audit_log import audit, open_audit_log

    handler = open_audit_log(path, title="JAMF PROVISIONER")
    audit("Creating policy...")
    close_audit_log(handler)
"""

import logging
from pathlib import Path
from typing import Optional

AUDIT_LOGGER_NAME = "jamf_provisioner.audit"

audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
audit_logger.setLevel(logging.INFO)
# Written to the audit file only, never echoed to the console
audit_logger.propagate = False

AUDIT_FORMAT = "%(asctime)s %(message)s"
AUDIT_DATEFMT = "%a %b %d %H:%M:%S %Z %Y"


def _banner(title: str) -> str:
    rule = "#" * (len(title) + 4)
    return f"{rule}\n# {title} #\n{rule}\n"


def open_audit_log(
    path: Path,
    title: str = "JAMF PROVISIONER",
    mode: str = "w",
) -> logging.FileHandler:
    """
    Attach a file handler for the audit log.

    Args:
        path: Log file location
        title: Banner written at the top of a fresh log
        mode: "w" to start fresh (provisioning run), "a" to append (teardown)

    Returns:
        The handler, to be passed to close_audit_log()
    """
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    # Banner first, so the handler's stream appends after it
    with open(path, mode, encoding="utf-8") as f:
        f.write(("\n" if mode == "a" else "") + _banner(title) + "\n")

    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(AUDIT_FORMAT, datefmt=AUDIT_DATEFMT))
    audit_logger.addHandler(handler)
    return handler


def close_audit_log(handler: Optional[logging.Handler]) -> None:
    """Detach and close an audit handler opened by open_audit_log()."""
    if handler is None:
        return
    audit_logger.removeHandler(handler)
    handler.close()


def audit(message: str, *args) -> None:
    """Write one line to the audit log."""
    audit_logger.info(message, *args)


def audit_section(title: str) -> None:
    """Write a section heading, mirroring the banner style."""
    audit_logger.info("\n%s", _banner(title))
