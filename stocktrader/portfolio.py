"""Portfolio backend: keeps members' holdings and applies buys and sells."""

from __future__ import annotations

import argparse
import re
from dataclasses import dataclass

from .protocol import P_UDP_PORT, answer_ping, bind_udp, udp_receive, udp_send

_INT_PREFIX = re.compile(r"[+-]?\d+")
_FLOAT_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass
class Holding:
    """Shares of one stock held by a member, with their average cost."""

    stock_name: str
    quantity: int
    avg_cost_price: float = 0.0


def _leading_int(token):
    match = _INT_PREFIX.match(token)
    return int(match.group()) if match else None


def _leading_float(token):
    match = _FLOAT_PREFIX.match(token)
    return float(match.group()) if match else None


def load_portfolios(path):
    """Read a portfolio file into holdings keyed by member.

    A line whose second word starts with an integer is a holding of the most
    recently named member; any other non-empty line names a member. A holding
    without a price gets an average cost of zero.
    """
    portfolios = {}
    current = ""
    with open(path, encoding="utf-8") as handle:
        for raw in handle:
            line = raw.rstrip("\n")
            if not line:
                continue
            tokens = line.split()
            quantity = _leading_int(tokens[1]) if len(tokens) >= 2 else None
            if quantity is None:
                current = line.strip()
                portfolios.setdefault(current, [])
                continue
            price = _leading_float(tokens[2]) if len(tokens) >= 3 else None
            holding = Holding(tokens[0], quantity, price if price is not None else 0.0)
            portfolios.setdefault(current, []).append(holding)
    return portfolios


def _find(holdings, stock_name):
    return next((h for h in holdings if h.stock_name == stock_name), None)


class PortfolioServer:
    """Answers POSITION, BUY and SELL requests."""

    def __init__(self, portfolios):
        self.portfolios = {user: list(holdings) for user, holdings in portfolios.items()}

    def handle(self, message):
        """Return the reply for one request."""
        fields = message.split()
        action = fields[0] if fields else ""
        user = fields[1] if len(fields) > 1 else ""
        args = fields[2:]

        if action == "POSITION":
            return self._position(user)
        if action == "SELL":
            return self._sell(user, args)
        if action == "BUY":
            return self._buy(user, args)
        print(f"[Server P] Unknown action: {action}")
        return "FAIL"

    def _position(self, user):
        print(f"[Server P] Received a position request from the main server for Member: {user}")
        holdings = self.portfolios.setdefault(user, [])
        reply = "".join(
            f"{h.stock_name} {h.quantity} {h.avg_cost_price:g}\n" for h in holdings if h.quantity != 0
        )
        print(f"[Server P] Finished sending the gain and portfolio of {user} to the main server.")
        return reply

    def _sell(self, user, args):
        stock_name = args[0] if args else ""
        quantity = (_leading_int(args[1]) if len(args) > 1 else None) or 0
        early_check = args[2] if len(args) > 2 else ""
        print("[Server P] Received a sell request from the main server.")

        if user not in self.portfolios:
            print(f"[Server P] User {user} does not exist. Unable to sell ")
            return "FAIL"

        holdings = self.portfolios[user]
        holding = _find(holdings, stock_name)
        if early_check == "YES":
            if holding is None:
                return "FAILSTOCK"
            if holding.quantity >= quantity:
                print(
                    f"[Server P] Stock {stock_name} has sufficient shares in {user}'s portfolio. "
                    "Requesting user's confirmation for selling stock."
                )
                return "OK_ELIGIBLE"
            print(
                f"[Server P] Stock {stock_name} does not have enough shares in {user}'s portfolio. "
                f"Unable to sell {quantity} shares of {stock_name}."
            )
            return "FAILQUANTITY"

        if holding is None:
            return "FAILSTOCK"
        holding.quantity -= quantity
        if holding.quantity == 0:
            holdings.remove(holding)
        print(
            f"[Server P] Successfully sold {quantity} shares of {stock_name} "
            f"and updated {user}'s portfolio."
        )
        return "OK_SOLD"

    def _buy(self, user, args):
        stock_name = args[0] if args else ""
        quantity = (_leading_int(args[1]) if len(args) > 1 else None) or 0
        price = (_leading_float(args[2]) if len(args) > 2 else None) or 0.0
        print("[Server P] Received a buy request from the client.")

        if user not in self.portfolios:
            print(f"[Server P] User {user} does not exist. Unable to buy ")
            return "FAIL"

        holdings = self.portfolios[user]
        holding = _find(holdings, stock_name)
        if holding is None:
            holdings.append(Holding(stock_name, quantity, price))
        else:
            total = holding.quantity + quantity
            if total:
                holding.avg_cost_price = (
                    holding.avg_cost_price * holding.quantity + price * quantity
                ) / total
            holding.quantity = total
        print(
            f"[Server P] Successfully bought {quantity} shares of {stock_name} "
            f"and updated {user}'s portfolio."
        )
        return "OK"

    def serve(self, sock):
        """Answer requests arriving on ``sock`` forever."""
        while True:
            message, addr = udp_receive(sock)
            if addr is None or answer_ping(sock, message, addr):
                continue
            udp_send(sock, self.handle(message), addr)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Member portfolio server.")
    parser.add_argument("--portfolios", default="portfolios.txt")
    parser.add_argument("--port", type=int, default=P_UDP_PORT)
    args = parser.parse_args(argv)

    print(f"[Server P] Booting up using UDP on port {args.port}")
    with bind_udp(args.port) as sock:
        server = PortfolioServer(load_portfolios(args.portfolios))
        server.serve(sock)
    return 0