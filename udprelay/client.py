#!/usr/bin/env python3
"""Command‑line UDP relay *client* supporting:

* Login with a display name, then plain lines are relayed to everyone else
* ``/color N`` – tag own messages with a color byte
* ``/whois ID`` – ask the server for another user's name
* ANSI‑coloured output via *colorama*.

Usage (after installing package locally):

    udprelay-client 127.0.0.1 --name alice
"""

from __future__ import annotations

import argparse                                    # For CLI parsing
import collections                                 # FIFO of outstanding /whois
import random                                      # Guest name
import shlex                                       # Robust command splitting
import socket                                      # Low‑level UDP API
import sys                                         # Needed for prompt redraw
import threading                                   # Background listener thread
from typing import Deque, Dict, Optional, Tuple

from colorama import Fore, Style, init

from .protocol import (
    BUF_SIZE, DEFAULT_PORT, Response, ResponseKind, decode_response,
    encode_login, encode_set_color, encode_text, encode_user_query,
)
from .util import LOG, configure_logging

# Color byte ➜ terminal colour; wraps around for larger values.
PALETTE = (
    Fore.WHITE, Fore.RED, Fore.GREEN, Fore.YELLOW,
    Fore.BLUE, Fore.MAGENTA, Fore.CYAN, Fore.LIGHTRED_EX,
)


def colour_for(color: int) -> str:
    return PALETTE[color % len(PALETTE)]


class UDPRelayClient:
    """Embeds the entire client state – can also be used programmatically."""

    def __init__(self, server_ip: str, server_port: int = DEFAULT_PORT) -> None:
        self.server: Tuple[str, int] = (server_ip, server_port)

        # Ephemeral port: the server tells users apart by (ip, port).
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("", 0))
        LOG.info("Client bound on port %d", self.sock.getsockname()[1])

        self.running = threading.Event()
        self.running.set()

        self.name: str = ""
        self.names: Dict[int, str] = {}            # id ➜ name, filled by /whois
        # UserName replies carry *our* id, not the target's.  A reply is only
        # tied to a target when exactly one /whois is outstanding; the server
        # stays silent for unknown ids and UDP may lose replies.
        self.pending_queries: Deque[int] = collections.deque()
        self._lock = threading.Lock()

    # ================================================================== main ===
    def start(self, name: Optional[str] = None) -> None:
        """Blocking run‑loop: read stdin while a background thread listens."""
        self.name = name or input("Your name: ").strip() or f"Guest{random.randint(1000, 9999)}"
        self.login(self.name)
        LOG.info("Welcome, %s", self.name)

        threading.Thread(target=self._recv_loop, daemon=True).start()

        try:
            while self.running.is_set():
                try:
                    line = input("> ")
                except EOFError:
                    break

                if line.lower() in {"/quit", "qqq"}:
                    break
                if line.startswith("/"):
                    self._handle_command(line)
                    continue
                if line:
                    self.say(line)
        except KeyboardInterrupt:
            pass
        finally:
            self.close()
            LOG.info("Disconnected")

    def close(self) -> None:
        self.running.clear()
        self.sock.close()

    # ---------------------------------------------------------------- requests
    def login(self, name: str) -> None:
        self._send(encode_login(name))

    def say(self, text: str) -> None:
        self._send(encode_text(text))

    def set_color(self, color: int) -> None:
        self._send(encode_set_color(color))

    def whois(self, user_id: int) -> None:
        with self._lock:
            if user_id in self.pending_queries:    # Newer request replaces it
                self.pending_queries.remove(user_id)
            self.pending_queries.append(user_id)
        self._send(encode_user_query(user_id))

    def _send(self, pkt: bytes) -> None:
        try:
            self.sock.sendto(pkt, self.server)
        except OSError as exc:
            LOG.error("Send failed: %s", exc)
            self.running.clear()

    # ---------------------------------------------------------------- receive
    def _recv_loop(self) -> None:
        """Background thread – prints inbound frames then redraws prompt."""
        while self.running.is_set():
            try:
                data, _ = self.sock.recvfrom(BUF_SIZE)
            except OSError:                        # Socket closed
                break
            try:
                response = decode_response(data)
            except ValueError as exc:
                LOG.warning("Received malformed frame: %s", exc)
                continue

            print(f"\r{self.render(response)}")
            sys.stdout.write("> ")
            sys.stdout.flush()

    def render(self, response: Response) -> str:
        """Format one server frame for the terminal."""
        if response.kind == ResponseKind.USER_NAME:
            name = response.payload.decode("utf-8", errors="replace")
            with self._lock:
                # Ambiguous (or unsolicited) reply: forget what we were waiting for.
                target = self.pending_queries[0] if len(self.pending_queries) == 1 else None
                self.pending_queries.clear()
            if target is None:
                return f"{Fore.CYAN}[WHOIS]{Style.RESET_ALL} {name}"
            self.names[target] = name
            return f"{Fore.CYAN}[WHOIS]{Style.RESET_ALL} #{target} is {name}"

        sender = self.names.get(response.user_id, f"#{response.user_id}")
        text = response.payload.decode("utf-8", errors="replace")
        return f"{colour_for(response.color)}<{sender}>{Style.RESET_ALL} {text}"

    # ---------------------------------------------------------------- commands
    def _handle_command(self, line: str) -> None:
        """Parse & execute slash‑commands using shlex for proper quoting."""
        try:
            cmd, *args = shlex.split(line)
        except ValueError as exc:
            print(f"Parse error: {exc}")
            return

        match cmd.lower():
            case "/color":
                value = _byte_arg(args)
                if value is None:
                    print("Usage: /color <0-255>")
                    return
                self.set_color(value)

            case "/whois":
                value = _byte_arg(args)
                if value is None:
                    print("Usage: /whois <user id 0-255>")
                    return
                self.whois(value)

            case _:
                print("Unknown command")


def _byte_arg(args: list[str]) -> Optional[int]:
    if len(args) != 1 or not args[0].isdigit():
        return None
    value = int(args[0])
    return value if value <= 0xFF else None

# ======================================================================
#  Command‑line entry point
# ======================================================================

def main(argv: Optional[list[str]] = None) -> None:
    """Parse CLI args then instantiate & run the relay client."""
    parser = argparse.ArgumentParser("udprelay-client", description="UDP text relay client")
    parser.add_argument("server_ip", help="IP address of relay server")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="UDP port of server")
    parser.add_argument("--name", help="display name (prompted if omitted)")
    args = parser.parse_args(argv)

    init(autoreset=True)                           # Reset colour after each print
    configure_logging(log_file=None)
    UDPRelayClient(args.server_ip, args.port).start(args.name)


if __name__ == "__main__":
    main()
