#!/usr/bin/env python3
"""UDP relay server.

* Background thread copies datagrams off the socket into a bounded queue.
* The calling thread is the only owner of the user directory and processes
  the queue one frame at a time: decode ➜ dispatch ➜ send.
* No persistence – everything lives in RAM until process exits.
"""

from __future__ import annotations

import argparse                       # CLI parsing
import logging
import queue                          # Bounded FIFO between recv‑thread & actor
import socket                         # UDP socket operations
import sys
import threading                      # Concurrency primitives
from typing import Optional

from .directory import UserDirectory
from .dispatcher import Outbound, dispatch
from .protocol import (
    BUF_SIZE, DEFAULT_HOST, DEFAULT_PORT, LOG_FILE, QUEUE_SIZE, RawMessage,
    Unknown, decode_message, encode_response,
)
from .util import LOG, configure_logging, get_local_ip


class UDPRelayServer:
    """Relay actor: owns the directory and serialises every mutation."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        queue_size: int = QUEUE_SIZE,
        sock: Optional[socket.socket] = None,
    ) -> None:
        self.host = host
        self.port = port

        # ------ bind socket (unless the caller hands us one) ------
        if sock is None:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
        self.sock = sock

        # ------ runtime state ------
        self.directory = UserDirectory()

        # put() blocks once full: the receive thread waits rather than drop.
        self.recv_q: "queue.Queue[RawMessage]" = queue.Queue(maxsize=queue_size)

        # Flag to shut all loops down cooperatively.
        self.running = threading.Event()
        self.running.set()

        # Set by the receive thread when the socket fails under us.
        self.failure: Optional[OSError] = None

    @property
    def address(self):
        return self.sock.getsockname()

    # ================================================================= main ===
    def start(self) -> None:
        LOG.info("Server listening on %s:%d", *self.address[:2])
        threading.Thread(target=self._recv_loop, name="udprelay-recv", daemon=True).start()
        try:
            self._process_loop()              # Forever until Ctrl‑C / stop()
        except KeyboardInterrupt:
            LOG.info("Shutdown requested")
        finally:
            self.stop()

    def stop(self) -> None:
        self.running.clear()
        self.sock.close()

    # ---------------------------------------------------------------- internals
    def _recv_loop(self) -> None:
        """Listener thread – only enqueues received datagrams."""
        while self.running.is_set():
            try:
                data, addr = self.sock.recvfrom(BUF_SIZE)
            except ConnectionResetError as exc:
                # Windows reports an earlier sendto() to a closed port here.
                LOG.debug("Ignoring connection reset: %s", exc)
                continue
            except OSError as exc:
                if self.running.is_set():     # Not a deliberate close ⇒ fatal
                    LOG.error("Receive failed, shutting down: %s", exc)
                    self.failure = exc
                    self.running.clear()
                break
            self.recv_q.put(RawMessage(addr, data))

    def _process_loop(self) -> None:
        """Single‑threaded actor – dequeue frames strictly in arrival order."""
        while self.running.is_set():
            try:
                raw = self.recv_q.get(timeout=0.5)  # Raises queue.Empty
            except queue.Empty:
                continue                            # Allow shutdown check
            self.handle_raw(raw)

    def handle_raw(self, raw: RawMessage) -> Outbound:
        """Decode, dispatch and send one frame; return what was sent."""
        message = decode_message(raw, self.directory)
        if isinstance(message, Unknown):
            LOG.debug("Dropped %d byte frame from %s", len(raw.content), raw.addr)
            return []

        outbound = dispatch(message, self.directory)
        for addr, response in outbound:
            self._send(encode_response(response), addr)
        return outbound

    def _send(self, pkt: bytes, addr) -> None:
        """Send helper – a failed send is logged and skipped."""
        try:
            self.sock.sendto(pkt, addr)
        except OSError as exc:
            LOG.warning("Send to %s failed: %s", addr, exc)

# ======================================================================
#  Command‑line entry point
# ======================================================================

def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser("udprelay-server", description="UDP text relay server")
    parser.add_argument("--host", default=DEFAULT_HOST,
                        help="address to bind, 'auto' for the primary interface")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--queue-size", type=int, default=QUEUE_SIZE,
                        help="raw frames buffered before the receiver blocks")
    parser.add_argument("--log-file", default=LOG_FILE, help="empty string disables file logging")
    parser.add_argument("-v", "--verbose", action="store_true", help="log dropped frames too")
    args = parser.parse_args(argv)

    configure_logging(args.log_file or None, logging.DEBUG if args.verbose else logging.INFO)
    host = get_local_ip() if args.host == "auto" else args.host
    server = UDPRelayServer(host, args.port, args.queue_size)
    server.start()
    if server.failure is not None:
        sys.exit(1)


if __name__ == "__main__":
    main()
