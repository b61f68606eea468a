"""Wire helpers shared by the trading servers and the client.

TCP traffic is line oriented: every message ends with a newline, and a
multi-line reply ends with an empty line. Backend traffic is one UDP
datagram per request and one per reply.
"""

from __future__ import annotations

import socket

LOCALHOST = "127.0.0.1"
M_PORT_TCP = 45569
M_PORT_UDP = 44569
A_UDP_PORT = 41569
P_UDP_PORT = 42569
Q_UDP_PORT = 43569
MAXBUFLEN = 1024
MAX_RETRIES = 120

Address = tuple[str, int]


class ConnectionClosed(Exception):
    """Raised when the peer closes a TCP connection in the middle of a read."""


class LineReader:
    """Reads newline-terminated lines from a stream socket."""

    def __init__(self, sock):
        self._sock = sock
        self._buffer = bytearray()

    def read_line(self):
        """Return the next line without its newline; carriage returns are dropped."""
        while True:
            newline = self._buffer.find(b"\n")
            if newline >= 0:
                raw = bytes(self._buffer[:newline])
                del self._buffer[: newline + 1]
                return raw.replace(b"\r", b"").decode("utf-8", errors="replace")
            chunk = self._sock.recv(MAXBUFLEN)
            if not chunk:
                raise ConnectionClosed("peer closed the connection")
            self._buffer += chunk

    def read_block(self):
        """Return lines up to the next empty line, each ending with a newline."""
        return "".join(line + "\n" for line in iter(self.read_line, ""))


def frame_line(msg):
    """Return ``msg`` terminated by exactly the newline the protocol expects."""
    return msg if msg.endswith("\n") else msg + "\n"


def send_line(sock, msg):
    """Send ``msg`` as one line over a stream socket."""
    sock.sendall(frame_line(msg).encode("utf-8"))


def local_address(port):
    """Return the loopback address for ``port``."""
    return (LOCALHOST, port)


def bind_udp(port):
    """Create a UDP socket bound to the loopback address on ``port``."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind(local_address(port))
    except OSError:
        sock.close()
        raise
    return sock


def udp_send(sock, msg, addr):
    """Send ``msg`` as a single datagram to ``addr``."""
    sock.sendto(msg.encode("utf-8"), addr)


def udp_receive(sock):
    """Receive one datagram as ``(text, sender)``.

    On a receive timeout the result is ``("", None)``.
    """
    try:
        data, addr = sock.recvfrom(MAXBUFLEN - 1)
    except (socket.timeout, BlockingIOError):
        return "", None
    return data.decode("utf-8", errors="replace"), addr


def answer_ping(sock, msg, addr):
    """Answer a readiness probe with PONG; return whether ``msg`` was one."""
    if msg != "PING":
        return False
    udp_send(sock, "PONG", addr)
    return True