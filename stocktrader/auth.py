"""Authentication backend: checks member credentials over UDP."""

from __future__ import annotations

import argparse

from .protocol import A_UDP_PORT, answer_ping, bind_udp, udp_receive, udp_send


def load_members(path):
    """Read whitespace-separated username/hashed-password pairs from ``path``."""
    with open(path, encoding="utf-8") as handle:
        tokens = handle.read().split()
    return dict(zip(tokens[0::2], tokens[1::2]))


class AuthServer:
    """Answers ``LOGIN <user> <hashed password>`` requests with OK or FAIL."""

    def __init__(self, members):
        self.members = dict(members)

    def handle(self, message):
        """Return the reply for one request."""
        fields = message.split()
        user = fields[1] if len(fields) > 1 else ""
        hashed = fields[2] if len(fields) > 2 else ""
        print(f"[Server A] Received username {user} and password ******.")
        if user in self.members and self.members[user] == hashed:
            print(f"[Server A] Member {user} has been authenticated.")
            return "OK"
        print(f"[Server A] The username {user} or password ****** is incorrect.")
        return "FAIL"

    def serve(self, sock):
        """Answer requests arriving on ``sock`` forever."""
        while True:
            message, addr = udp_receive(sock)
            if addr is None or answer_ping(sock, message, addr):
                continue
            udp_send(sock, self.handle(message), addr)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Member authentication server.")
    parser.add_argument("--members", default="members.txt")
    parser.add_argument("--port", type=int, default=A_UDP_PORT)
    args = parser.parse_args(argv)

    print(f"[Server A] Booting up using UDP on port {args.port}")
    with bind_udp(args.port) as sock:
        server = AuthServer(load_members(args.members))
        server.serve(sock)
    return 0