#!/usr/bin/env python3
"""Shared constants, records and the binary frame codec used by **both**
client & server.

Every datagram that travels over the network is built or parsed by the helpers
here so that client & server never disagree on wire‑format details.

Inbound frame  (client ⟶ server):  ``tag:1 | payload:*``
Outbound frame (server ⟶ client):  ``kind:1 | user_id:1 | color:1 | payload:*``
"""

from __future__ import annotations       # Postponed annotation evaluation (PEP 563)
from dataclasses import dataclass        # Plain records for users / frames
from enum import IntEnum                 # Outbound frame kinds
from typing import TYPE_CHECKING, Optional, Tuple, Union

from .packet_spec import (  # noqa: F401  (tags re‑exported for callers)
    LOGIN, MIN_PAYLOAD_BY_TAG, REGISTERED_ONLY, SET_COLOR, TEXT, USER_QUERY,
)

if TYPE_CHECKING:                        # Avoid import cycle at runtime
    from .directory import UserDirectory

Address = Tuple[str, int]                # (ip, port) as returned by recvfrom()

# --- Network configuration -------------------------------------------------
DEFAULT_HOST: str = "127.0.0.1"  # Rendezvous address the server binds to
DEFAULT_PORT: int = 7878         # Well‑known port on which server listens
BUF_SIZE: int = 1024             # Max UDP datagram size we accept/read (bytes)
QUEUE_SIZE: int = 1000           # Raw frames buffered between recv‑thread & actor
MAX_USERS: int = 256             # User ids travel as a single byte
LOG_FILE: str = "udp_relay.log"


class ResponseKind(IntEnum):
    """First byte of every frame the server sends."""

    TEXT = 0
    USER_NAME = 1

    @classmethod
    def from_byte(cls, value: int) -> "ResponseKind":
        # Anything other than 1 is treated as plain text.
        return cls.USER_NAME if value == cls.USER_NAME else cls.TEXT


# --- Records -------------------------------------------------------------

@dataclass(slots=True)
class User:
    """A registered client (stored on server side only)."""

    addr: Address
    id: int
    name: str
    color: Optional[int] = None   # None until the user sends SET_COLOR

    @property
    def wire_color(self) -> int:
        return self.color or 0


@dataclass(frozen=True, slots=True)
class RawMessage:
    """One datagram exactly as it came off the socket."""

    addr: Address
    content: bytes


@dataclass(frozen=True, slots=True)
class Response:
    """Outbound frame; ``user_id`` and ``color`` must fit in one byte each."""

    kind: ResponseKind
    user_id: int
    color: int
    payload: bytes = b""

    def __post_init__(self) -> None:
        for field_name in ("user_id", "color"):
            value = getattr(self, field_name)
            if not 0 <= value <= 0xFF:
                raise ValueError(f"{field_name} {value} does not fit in one byte")

    @classmethod
    def for_user(cls, kind: ResponseKind, user: User, payload: bytes) -> "Response":
        return cls(kind, user.id, user.wire_color, payload)


# --- Decoded inbound messages ---------------------------------------------

@dataclass(frozen=True, slots=True)
class Unknown:
    """Anything we silently ignore."""


@dataclass(frozen=True, slots=True)
class Login:
    addr: Address
    name: str


@dataclass(frozen=True, slots=True)
class SetColor:
    user: User
    color: bytes


@dataclass(frozen=True, slots=True)
class UserQuery:
    requester: User
    target: User


@dataclass(frozen=True, slots=True)
class Text:
    user: User
    body: bytes


ProtocolMessage = Union[Unknown, Login, SetColor, UserQuery, Text]

UNKNOWN = Unknown()


# --- Inbound codec ---------------------------------------------------------

def decode_message(raw: RawMessage, directory: "UserDirectory") -> ProtocolMessage:
    """Turn a raw datagram into a typed message.

    Tags 2‑4 additionally resolve the sender by address; an unregistered sender
    (or a query naming an unknown id) yields :data:`UNKNOWN`, as does any
    malformed frame.
    """
    if not raw.content:
        return UNKNOWN

    tag, payload = raw.content[0], raw.content[1:]
    if len(payload) < MIN_PAYLOAD_BY_TAG.get(tag, 0):
        return UNKNOWN

    if tag == LOGIN:
        try:
            name = payload.decode("utf-8")
        except UnicodeDecodeError:
            return UNKNOWN
        return Login(raw.addr, name) if name else UNKNOWN

    if tag not in REGISTERED_ONLY:
        return UNKNOWN

    sender = directory.find_by_address(raw.addr)
    if sender is None:
        return UNKNOWN

    if tag == SET_COLOR:
        return SetColor(sender, payload)
    if tag == USER_QUERY:
        target = directory.find_by_id(payload[0])
        return UserQuery(sender, target) if target is not None else UNKNOWN
    return Text(sender, payload)


def encode_login(name: str) -> bytes:
    return bytes([LOGIN]) + name.encode("utf-8")


def encode_set_color(color: int) -> bytes:
    return bytes([SET_COLOR, color])


def encode_user_query(user_id: int) -> bytes:
    return bytes([USER_QUERY, user_id])


def encode_text(body: Union[str, bytes]) -> bytes:
    if isinstance(body, str):
        body = body.encode("utf-8")
    return bytes([TEXT]) + body


# --- Outbound codec --------------------------------------------------------

HEADER_SIZE = 3


def encode_response(response: Response) -> bytes:
    """``[kind, user_id, color] + payload``; never fails for a valid Response."""
    return bytes([response.kind, response.user_id, response.color]) + response.payload


def decode_response(data: bytes) -> Response:
    """Inverse of :func:`encode_response` – used by the client."""
    if len(data) < HEADER_SIZE:
        raise ValueError(f"frame too short: {len(data)} bytes")
    return Response(
        ResponseKind.from_byte(data[0]),
        data[1],
        data[2],
        bytes(data[HEADER_SIZE:]),
    )
