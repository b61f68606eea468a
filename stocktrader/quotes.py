"""Quote backend: serves stock prices that move forward one step per trade."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass, field

from .protocol import Q_UDP_PORT, answer_ping, bind_udp, udp_receive, udp_send


@dataclass
class PriceSequence:
    """A cyclic list of prices with a cursor that moves on every trade."""

    prices: list[float] = field(default_factory=list)
    idx: int = 0

    def current(self):
        """Return the price at the cursor."""
        return self.prices[self.idx]

    def advance(self):
        """Move the cursor one step, wrapping around, and return the new price."""
        self.idx = (self.idx + 1) % len(self.prices)
        return self.current()


def _leading_floats(tokens):
    for token in tokens:
        try:
            yield float(token)
        except ValueError:
            return


def load_quotes(path):
    """Read ``<stock> <price> <price> ...`` lines into sequences keyed by stock."""
    quotes = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            tokens = line.split()
            if not tokens:
                continue
            name, *rest = tokens
            quotes[name] = PriceSequence(list(_leading_floats(rest)))
    return dict(sorted(quotes.items()))


def _fmt(price):
    return f"{price:.2f}"


class QuoteServer:
    """Answers QUOTEALL, QUOTE and ADVANCE requests."""

    def __init__(self, quotes):
        self.quotes = dict(quotes)

    def handle(self, message):
        """Return the reply for one request, or None when nothing is sent back."""
        fields = message.split()
        action = fields[0] if fields else ""
        stock_name = fields[2] if len(fields) > 2 else ""

        if action == "QUOTEALL":
            print("[Server Q] Received a quote request from the main server.")
            reply = "".join(
                f"{name} {_fmt(self.quotes[name].current())}\n" for name in sorted(self.quotes)
            )
            print("[Server Q] Returned all stock quotes.")
            return reply

        if action == "QUOTE":
            print(
                "[Server Q] Received a quote request from the main server "
                f"for stock {stock_name}."
            )
            sequence = self.quotes.get(stock_name)
            if sequence is None:
                print(f"[Server Q] Stock {stock_name} not found.", file=sys.stderr)
                return ""
            print(f"[Server Q] Returned the stock quote of {stock_name}.")
            return f"{stock_name} {_fmt(sequence.current())}"

        if action == "ADVANCE":
            sequence = self.quotes.get(stock_name)
            if sequence is None:
                print(f"[Server Q] Stock {stock_name} not found to advance.", file=sys.stderr)
                return "NA"
            previous = sequence.current()
            new_price = sequence.advance()
            print(
                f"[Server Q] Received a time forward request for {stock_name}, "
                f"the current price of that stock is {_fmt(new_price)} "
                f"at time {sequence.idx}."
            )
            return f"{stock_name} {_fmt(previous)}"

        print(f"[Server Q] Unknown action: {action}", file=sys.stderr)
        return None

    def serve(self, sock):
        """Answer requests arriving on ``sock`` forever."""
        while True:
            message, addr = udp_receive(sock)
            if addr is None or answer_ping(sock, message, addr):
                continue
            reply = self.handle(message)
            if reply is not None:
                udp_send(sock, reply, addr)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Stock quote server.")
    parser.add_argument("--quotes", default="quotes.txt")
    parser.add_argument("--port", type=int, default=Q_UDP_PORT)
    args = parser.parse_args(argv)

    print(f"[Server Q] Booting up using UDP on port {args.port}")
    with bind_udp(args.port) as sock:
        server = QuoteServer(load_quotes(args.quotes))
        server.serve(sock)
    return 0