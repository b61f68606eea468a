"""Main server: accepts clients over TCP and coordinates the UDP backends."""

from __future__ import annotations

import argparse
import socket
import sys
import threading
import time

from .protocol import (
    A_UDP_PORT,
    M_PORT_TCP,
    M_PORT_UDP,
    MAX_RETRIES,
    P_UDP_PORT,
    Q_UDP_PORT,
    ConnectionClosed,
    LineReader,
    bind_udp,
    local_address,
    send_line,
    udp_receive,
    udp_send,
)

STOCK_MISSING = "[Client] Error: stock name does not exist. Please check again"


def encrypt_password(password):
    """Shift letters by three (keeping case) and digits by three; leave the rest."""
    out = []
    for ch in password:
        if "A" <= ch <= "Z":
            out.append(chr(ord("A") + (ord(ch) - ord("A") + 3) % 26))
        elif "a" <= ch <= "z":
            out.append(chr(ord("a") + (ord(ch) - ord("a") + 3) % 26))
        elif "0" <= ch <= "9":
            out.append(chr(ord("0") + (ord(ch) - ord("0") + 3) % 10))
        else:
            out.append(ch)
    return "".join(out)


def compute_gain(portfolio, price_lookup):
    """Return the unrealised gain of a ``<stock> <shares> <avg price>`` listing.

    ``price_lookup`` maps a stock name to its current price. Malformed lines
    are reported on stderr and skipped.
    """
    gain = 0.0
    for line in portfolio.splitlines():
        if not line:
            continue
        fields = line.split()
        try:
            stock_name = fields[0]
            shares = int(fields[1])
            avg_buy_price = float(fields[2])
        except (IndexError, ValueError):
            print(f'[Server M] Warning: malformed position line: "{line}"', file=sys.stderr)
            continue
        gain += (price_lookup(stock_name) - avg_buy_price) * shares
    return gain


def _leading_int(token):
    digits = ""
    for i, ch in enumerate(token):
        if ch.isdigit() or (i == 0 and ch in "+-"):
            digits += ch
        else:
            break
    try:
        return int(digits)
    except ValueError:
        return 0


def _after_first_space(text):
    return text[text.find(" ") + 1 :]


class Backends:
    """The main server's UDP link to the auth, portfolio and quote servers."""

    def __init__(self, sock, auth_addr, portfolio_addr, quote_addr):
        self.sock = sock
        self.auth_addr = auth_addr
        self.portfolio_addr = portfolio_addr
        self.quote_addr = quote_addr
        self._lock = threading.Lock()

    def request(self, addr, msg):
        """Send ``msg`` to ``addr`` and return the reply ("" on timeout)."""
        with self._lock:
            udp_send(self.sock, msg, addr)
            reply, _ = udp_receive(self.sock)
        return reply

    def health_check(self, addr, timeout=2.0):
        """Return whether the server at ``addr`` answers PING with PONG."""
        with self._lock:
            udp_send(self.sock, "PING", addr)
            self.sock.settimeout(timeout)
            reply, _ = udp_receive(self.sock)
        return reply == "PONG"


def wait_for_backends(backends, retries=MAX_RETRIES, delay=1.0):
    """Probe every backend until all answer; raise RuntimeError after ``retries``."""
    addrs = (backends.auth_addr, backends.portfolio_addr, backends.quote_addr)
    for _ in range(retries):
        if all(backends.health_check(addr) for addr in addrs):
            return
        time.sleep(delay)
    raise RuntimeError("[Server M] One or more dependent servers are down. Exiting.")


class ClientSession:
    """Serves one connected client: login, then commands until ``exit``."""

    def __init__(self, conn, backends):
        self.conn = conn
        self.backends = backends
        self.reader = LineReader(conn)
        self.user = ""

    def _send_block(self, text):
        send_line(self.conn, text)
        send_line(self.conn, "")

    def serve(self):
        """Log the client in and answer its commands until it exits."""
        self.login()
        while True:
            option = self.reader.read_line()
            if option.startswith("exit"):
                print("[Server M] Client disconnected.")
                return
            if option.startswith("quote"):
                self.handle_quote(option)
            elif option.startswith("position"):
                self.handle_position()
            elif option.startswith("buy"):
                self.handle_buy(option)
            elif option.startswith("sell"):
                self.handle_sell(option)
            else:
                print("[Server M] Invalid command. Please try again.")

    def login(self):
        """Check credentials with the auth server; return whether login succeeded."""
        attempts = 0
        authenticated = False
        while attempts < MAX_RETRIES and not authenticated:
            self.user = self.reader.read_line()
            password = self.reader.read_line()
            hashed = encrypt_password(password)
            print(f"[Server M] Received username {self.user} and password {'*' * len(password)}")
            reply = self.backends.request(self.backends.auth_addr, f"LOGIN {self.user} {hashed}")
            print("[Server M] Sent the authentication request to Server A")
            print(f"[Server M] Received the response from server A using UDP over port {M_PORT_UDP}.")
            if reply != "OK":
                send_line(self.conn, "Authentication failed\n")
                attempts += 1
            else:
                send_line(self.conn, "Authentication successful\n")
                authenticated = True
        print(
            "[Server M] Sent the response from server A to the client using TCP over port "
            f"{M_PORT_TCP}"
        )
        return authenticated

    def handle_quote(self, option):
        """Answer ``quote`` or ``quote <stock>``."""
        quote_addr = self.backends.quote_addr
        if len(option) == 5 or not option[6:].lstrip(" "):
            print(
                f"[Server M] Received a quote request from {self.user}, "
                f"using TCP over port {M_PORT_TCP}."
            )
            response = self.backends.request(quote_addr, f"QUOTEALL {self.user}")
            print("[Server M] Forwarded the quote request to server Q")
            print(
                "[Server M] Received the quote response from server Q "
                f"using UDP over {M_PORT_UDP}."
            )
        else:
            stock_name = _after_first_space(option)
            print(
                f"[Server M] Received a quote request from {self.user} for stock "
                f"{stock_name}, using TCP over port {M_PORT_TCP}."
            )
            response = self.backends.request(quote_addr, f"QUOTE {self.user} {stock_name}")
            print("[Server M] Forwarded the quote request to server Q")
            if response == "":
                response = f"{stock_name} does not exist. Please try again."
            print(
                f"[Server M] Received the quote response from server Q for stock "
                f"{stock_name} using UDP over {M_PORT_UDP}."
            )
        self._send_block(response)
        print("[Server M] Forwarded the quote response to the client.")

    def _current_price(self, stock_name):
        reply = self.backends.request(
            self.backends.quote_addr, f"QUOTE {self.user} {stock_name}"
        )
        return float(_after_first_space(reply))

    def handle_position(self):
        """Send the member's holdings and current profit."""
        print(
            "[Server M] Received a position request from Member to check "
            f"{self.user}’s gain using TCP over port {M_PORT_TCP}."
        )
        response = self.backends.request(self.backends.portfolio_addr, f"POSITION {self.user}")
        print("[Server M] Forwarded the position request to server P.")
        print(f"[Server M] Received user’s portfolio from server P using UDP over {M_PORT_UDP}.")
        print("[Server M] Sent the quote request to server Q")
        gain = compute_gain(response, self._current_price)
        print("[Server M] Received quote response from server Q.")
        text = (
            "stock shares avg_buy_price\n"
            + response
            + f"{self.user}’s current profit is : {gain:.2f}\n"
        )
        self._send_block(text)
        print("[Server M] Forwarded the gain to the client.")

    def _parse_trade(self, option):
        fields = option.split()
        stock_name = fields[1] if len(fields) > 1 else ""
        shares = _leading_int(fields[2]) if len(fields) > 2 else 0
        return stock_name, shares

    def _quote_for_trade(self, stock_name):
        response = self.backends.request(
            self.backends.quote_addr, f"QUOTE {self.user} {stock_name}"
        )
        print("[Server M] Sent the quote request to server Q.")
        print("[Server M] Received quote response from server Q")
        return response

    def handle_buy(self, option):
        """Quote, confirm with the client, record the purchase, then advance time."""
        print(
            f"[Server M] Received a buy request from member {self.user} "
            f"using TCP over port {M_PORT_TCP}."
        )
        stock_name, shares = self._parse_trade(option)
        response = self._quote_for_trade(stock_name)
        if response == "":
            self._send_block(STOCK_MISSING)
            return
        current_price = _after_first_space(response)
        self._send_block(
            f"[Client] {stock_name}'s current price is {current_price}. Proceed to buy? (Y/N)\n"
        )
        print("[Server M] Sent the buy confirmation to the client.")

        choice = self.reader.read_line()
        if choice in ("Y", "y"):
            print("[Server M] Buy approved.")
            reply = self.backends.request(
                self.backends.portfolio_addr,
                f"BUY {self.user} {stock_name} {shares} {current_price}",
            )
            print("[Server M] Forwarded the buy confirmation response to server P.")
            if reply == "OK":
                self._send_block(reply)
                print("[Server M] Forwarded the buy result to the client.")
        elif choice in ("N", "n"):
            self._send_block("DENIED")
            print("[Server M] Buy denied.")
        else:
            print("Not a valid operation.")
        self.advance(stock_name)

    def handle_sell(self, option):
        """Check eligibility, confirm with the client, record the sale, advance time."""
        print(
            f"[Server M] Received a sell request from member {self.user} "
            f"using TCP over port {M_PORT_TCP}."
        )
        stock_name, shares = self._parse_trade(option)
        response = self._quote_for_trade(stock_name)
        if response == "":
            self._send_block(STOCK_MISSING)
            return
        current_price = _after_first_space(response)

        portfolio_addr = self.backends.portfolio_addr
        reply = self.backends.request(
            portfolio_addr, f"SELL {self.user} {stock_name} {shares} YES"
        )
        print("[Server M] Forwarded the sell request to server P.")
        message = ""
        if reply == "FAILSTOCK":
            self._send_block("[Client] Error: stock name does not exist. Please check again \n")
            self.advance(stock_name)
            return
        if reply == "FAILQUANTITY":
            self._send_block(
                f"[Client] Error: {self.user} does not have enough shares of {stock_name} "
                "to sell. Please try again. \n"
            )
            self.advance(stock_name)
            return
        if reply == "OK_ELIGIBLE":
            message = (
                f"[Client] {stock_name} current price is {current_price}. "
                "Proceed to sell? (Y/N)\n"
            )
        else:
            print(
                f"[Server M] Sell request for {shares} shares of {stock_name} failed. UNEXPECTED"
            )
        self._send_block(message)
        print("[Server M] Forwarded the sell confirmation to the client.")

        choice = self.reader.read_line()
        if choice in ("Y", "y"):
            result = self.backends.request(
                portfolio_addr, f"SELL {self.user} {stock_name} {shares} NO"
            )
            print("[Server M] Forwarded the sell confirmation response to Server P.")
            if result == "OK_SOLD":
                self._send_block("OK")
                print("[Server M] Forwarded the sell result to the client.")
            else:
                print(f"[Server M] Sell request for {shares} shares of {stock_name} failed.")
        elif choice in ("N", "n"):
            self._send_block("DENIED")
            print("[Server M] Sell denied.")
        else:
            print("Not a valid operation.")
        self.advance(stock_name)

    def advance(self, stock_name):
        """Ask the quote server to move ``stock_name`` one step; return its reply."""
        reply = self.backends.request(
            self.backends.quote_addr, f"ADVANCE {self.user} {stock_name}"
        )
        print(f"[Server M] Sent a time forward request for {stock_name}")
        if reply == "NA":
            self._send_block(STOCK_MISSING)
        return reply


def _serve_connection(conn, backends):
    with conn:
        try:
            ClientSession(conn, backends).serve()
        except ConnectionClosed:
            print(
                "ERROR: Server M failed to receive TCP information from Client",
                file=sys.stderr,
            )
        except OSError as exc:
            print(f"ERROR: Server M connection failed: {exc}", file=sys.stderr)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Main trading server.")
    parser.add_argument("--tcp-port", type=int, default=M_PORT_TCP)
    parser.add_argument("--udp-port", type=int, default=M_PORT_UDP)
    parser.add_argument("--retries", type=int, default=MAX_RETRIES)
    args = parser.parse_args(argv)

    print(f"[Server M] Booting up using UDP on port {args.udp_port}")
    with bind_udp(args.udp_port) as udp_sock, socket.socket(
        socket.AF_INET, socket.SOCK_STREAM
    ) as listener:
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        listener.bind(local_address(args.tcp_port))
        backends = Backends(
            udp_sock,
            local_address(A_UDP_PORT),
            local_address(P_UDP_PORT),
            local_address(Q_UDP_PORT),
        )
        try:
            wait_for_backends(backends, args.retries)
        except RuntimeError as exc:
            print(exc, file=sys.stderr)
            return 1
        listener.listen(10)
        while True:
            try:
                conn, _ = listener.accept()
            except OSError:
                continue
            threading.Thread(
                target=_serve_connection, args=(conn, backends), daemon=True
            ).start()