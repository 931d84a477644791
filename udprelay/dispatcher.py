#!/usr/bin/env python3
"""Session dispatcher – decides what a decoded frame does.

Each handler applies its directory mutation (if any) and returns the frames to
send as ``(address, Response)`` pairs.  Nothing here touches a socket.
"""

from __future__ import annotations

from typing import List, Tuple

from .directory import DirectoryError, UserDirectory
from .protocol import (
    Address, Login, ProtocolMessage, Response, ResponseKind, SetColor, Text,
    UserQuery,
)
from .util import LOG

Outbound = List[Tuple[Address, Response]]


def dispatch(message: ProtocolMessage, directory: UserDirectory) -> Outbound:
    """Apply ``message`` to ``directory`` and return the frames to send."""
    if isinstance(message, Login):
        return _handle_login(message, directory)
    if isinstance(message, SetColor):
        return _handle_set_color(message, directory)
    if isinstance(message, Text):
        return _handle_text(message, directory)
    if isinstance(message, UserQuery):
        return _handle_query(message)
    return []                                   # Unknown ⇒ dropped


# ---------------------------------------------------------------- handlers
def _handle_login(msg: Login, directory: UserDirectory) -> Outbound:
    try:
        user = directory.register(msg.addr, msg.name)
    except DirectoryError as exc:
        LOG.warning("Login '%s' from %s rejected: %s", msg.name, msg.addr, exc)
        return []
    LOG.info("%s logged in from %s as #%d", user.name, user.addr, user.id)
    return []                                   # Login is never acknowledged


def _handle_set_color(msg: SetColor, directory: UserDirectory) -> Outbound:
    color = msg.color[0] if msg.color else 0
    directory.update_color(msg.user.id, color)
    LOG.info("%s set color to %d", msg.user.name, color)
    return []


def _handle_text(msg: Text, directory: UserDirectory) -> Outbound:
    sender = msg.user
    response = Response.for_user(ResponseKind.TEXT, sender, msg.body)
    targets = [(u.addr, response) for u in directory.others(sender)]
    LOG.info("<%s> %d bytes -> %d user(s)", sender.name, len(msg.body), len(targets))
    return targets


def _handle_query(msg: UserQuery) -> Outbound:
    requester, target = msg.requester, msg.target
    LOG.info("%s asked for the name of #%d", requester.name, target.id)
    response = Response.for_user(
        ResponseKind.USER_NAME, requester, target.name.encode("utf-8"),
    )
    return [(requester.addr, response)]
