#!/usr/bin/env python3
"""Logging utils **and** helper that discovers our outward‑facing IP address."""

from __future__ import annotations
import logging                           # Python stdlib logging framework
import socket                            # Needed for IP detection
import sys                               # For stdout handle
from logging.handlers import RotatingFileHandler
from typing import Optional

__all__ = ["LOG", "configure_logging", "get_local_ip"]

# Shared named logger; modules log through it before or without configuration.
LOG = logging.getLogger("udprelay")

# ----------------------------------------------------------------------
# configure_logging() attaches console + rotating file output.  Entry points
# call it once; repeated calls only adjust the level.
# ----------------------------------------------------------------------

def configure_logging(
    log_file: Optional[str] = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """Return the "udprelay" logger wired to stdout and, optionally, a file."""

    LOG.setLevel(level)
    if LOG.handlers:                         # Already configured
        return LOG

    # Unified log line format.  Example: [23:59:59] INFO     alice logged in
    fmt = logging.Formatter("[%(asctime)s] %(levelname)-8s %(message)s", "%H:%M:%S")

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)
    LOG.addHandler(sh)

    if log_file:
        # Rotates once file hits ±1 MiB, keeps 3 backups ⇒ log ≲ 4 MiB on disk.
        fh = RotatingFileHandler(
            log_file,
            maxBytes=1_048_576,
            backupCount=3,
            encoding="utf-8",
        )
        fh.setFormatter(fmt)
        LOG.addHandler(fh)

    return LOG

# ----------------------------------------------------------------------
# best‑effort outward IP discovery (no external calls, works offline)
# ----------------------------------------------------------------------

def get_local_ip() -> str:
    """Return the host's primary IP, fallback to 127.0.0.1 on failure."""

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # connect() on UDP sends nothing; it only makes the OS pick a source IP.
        sock.connect(("8.8.8.8", 80))
        return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        sock.close()
