"""Interactive trading client that talks to the main server over TCP."""

from __future__ import annotations

import argparse
import re
import socket
import sys
import time

from .protocol import (
    M_PORT_TCP,
    MAX_RETRIES,
    ConnectionClosed,
    LineReader,
    local_address,
    send_line,
)

MENU = (
    "[Client] Please enter the command:\n"
    "quote\n"
    "quote <stock name>\n"
    "buy <stock name> <number of shares>\n"
    "sell <stock name> <number of shares>\n"
    "position\n"
    "exit\n"
    "--------------------------------------\n"
)
NEW_REQUEST = "—-------------Start a new request—--------------\n"

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")


def _leading_int(text):
    match = _INT_PREFIX.match(text)
    return int(match.group(1)) if match else None


def validate_command(cmd, command):
    """Check that ``cmd`` is ``<command> <stock name> <positive shares>``.

    Raises ValueError carrying the message shown to the user.
    """
    message = (
        "[Client] Error: stock name/shares are required. "
        f"Please specify a stockname to {command}."
    )
    first = cmd.find(" ")
    second = cmd.find(" ", first + 1) if first >= 0 else -1
    if first < 0 or second < 0:
        raise ValueError(message)
    quantity = _leading_int(cmd[second + 1 :])
    if quantity is None or quantity <= 0:
        raise ValueError(message)


def connect_to_main(retries=MAX_RETRIES, delay=1.0):
    """Connect to the main server, trying up to ``retries`` times."""
    for attempt in range(retries):
        try:
            return socket.create_connection(local_address(M_PORT_TCP))
        except OSError:
            if attempt + 1 < retries:
                time.sleep(delay)
    raise ConnectionError(f"[Client] Could not connect after {retries} tries. Exiting.")


class TradingClient:
    """Drives one login and command session over a connected socket."""

    def __init__(self, sock, stdin=None, stdout=None):
        self.sock = sock
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.reader = LineReader(sock)
        self.username = ""
        self.port = sock.getsockname()[1]

    def _write(self, text):
        self.stdout.write(text)
        self.stdout.flush()

    def _read_input(self):
        line = self.stdin.readline()
        if not line:
            return None
        return line[:-1] if line.endswith("\n") else line

    def login(self):
        """Prompt for credentials until the main server accepts them."""
        self._write("[Client] Logging in.\n")
        while True:
            self._write("Please enter the username: ")
            username = self._read_input()
            self._write("Please enter the password: ")
            password = self._read_input()
            if username is None or password is None:
                raise EOFError("input ended before login")
            send_line(self.sock, username + "\n")
            send_line(self.sock, password + "\n")
            if self.reader.read_line() == "Authentication successful":
                self._write("[Client] You have been granted access.\n")
                self.username = username
                return username
            self._write("[Client] The credentials are incorrect. Please try again.\n")

    def _received(self):
        self._write(
            "[Client] Received the response from the main server using TCP over port "
            f"{self.port}.\n"
        )

    def _quote(self, cmd):
        send_line(self.sock, cmd)
        self._write("[Client] Sent a quote request to the main server.\n")
        response = self.reader.read_block()
        self._received()
        self._write(response)

    def _position(self, cmd):
        send_line(self.sock, cmd)
        self._write(f"[Client] {self.username} sent a position request to the main server.\n")
        response = self.reader.read_block()
        self._received()
        self._write(response)

    def _confirm(self):
        while True:
            choice = self._read_input()
            if choice is None:
                return "N"
            if choice in ("Y", "y", "N", "n"):
                return choice
            self._write("[Client] Invalid input. Please enter 'Y' or 'N': ")

    def _trade(self, cmd, verb):
        """Run a buy or sell exchange; return False when it ended early."""
        try:
            validate_command(cmd, verb)
        except ValueError as exc:
            self._write(f"{exc}\n")
            return False

        send_line(self.sock, cmd)
        self._write(f"[Client] {self.username} sent a {verb} request to the main server.\n")
        response = self.reader.read_block()
        self._write(response)
        if "Error" in response:
            return False

        choice = self._confirm()
        fields = cmd.split()
        stock_name = fields[1] if len(fields) > 1 else ""
        shares = (_leading_int(fields[2]) if len(fields) > 2 else None) or 0
        send_line(self.sock, choice)
        result = self.reader.read_block()

        if verb == "buy":
            if "OK" in result:
                self._write(
                    "[Client] Received the response from the main server using TCP over port "
                    f"{self.port}\n"
                )
                self._write(f"{self.username} successfully bought {shares} shares of {stock_name}.\n")
            elif "DENIED" in result:
                self._write(f"[Client] {self.username} denied the buy request.\n")
            else:
                self._write("[Client] Some Error Occured\n")
        elif "OK" in result:
            self._write(
                f"[Client] {self.username} successfully sold {shares} shares of {stock_name}\n"
            )
        else:
            self._write(f"[Server M] Sell request for {shares} shares of {stock_name} failed.\n")
        return True

    def run(self):
        """Log in, then read and carry out commands until ``exit``."""
        self.login()
        while True:
            self._write(MENU)
            cmd = self._read_input()
            if cmd is None:
                cmd = "exit"
            elif cmd.startswith("quote"):
                self._quote(cmd)
            elif cmd == "position":
                self._position(cmd)
            elif cmd.startswith("buy"):
                if not self._trade(cmd, "buy"):
                    continue
            elif cmd.startswith("sell"):
                if not self._trade(cmd, "sell"):
                    continue
            elif cmd != "exit":
                self._write("[Client] Invalid command. Please try again.\n")

            if cmd == "exit":
                send_line(self.sock, cmd)
                self._write("[Client] Exiting the client.\n")
                return 0
            self._write(NEW_REQUEST)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Stock trading client.")
    parser.add_argument("--retries", type=int, default=MAX_RETRIES)
    args = parser.parse_args(argv)

    print("[Client] Booting up.")
    try:
        sock = connect_to_main(args.retries)
    except ConnectionError as exc:
        print(exc, file=sys.stderr)
        return 1
    with sock:
        try:
            return TradingClient(sock).run()
        except ConnectionClosed:
            print("ERROR: Client failed to receive TCP information from Server", file=sys.stderr)
            return 1
        except EOFError:
            return 1