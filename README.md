# stocktrader

A small stock trading system made of four cooperating servers and an
interactive command-line client, all running on the local machine
(`127.0.0.1`). It needs nothing beyond the Python standard library.

| Component      | Command                 | Module                    | Transport | Port  |
|----------------|-------------------------|---------------------------|-----------|-------|
| Main server    | `stocktrader-main`      | `stocktrader.main_server` | TCP / UDP | 45569 / 44569 |
| Authentication | `stocktrader-auth`      | `stocktrader.auth`        | UDP       | 41569 |
| Portfolios     | `stocktrader-portfolio` | `stocktrader.portfolio`   | UDP       | 42569 |
| Quotes         | `stocktrader-quotes`    | `stocktrader.quotes`      | UDP       | 43569 |
| Client         | `stocktrader-client`    | `stocktrader.client`      | TCP       | chosen by the OS |

Clients talk only to the main server over TCP. The main server forwards
work to the three back-end servers over UDP, one datagram per request and
one per reply, and checks with a `PING` / `PONG` exchange that all three
are up before it accepts clients. Each client connection is served on its
own thread, so several clients can trade at once.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Data files

Each back-end server reads its data file when it starts; by default from
the current working directory.

- `members.txt` — whitespace-separated pairs of a username and the user's
  encoded password. The main server encodes a typed password with
  `encrypt_password` (letters shifted by 3 with wrap-around, keeping
  case; digits shifted by 3 modulo 10; other characters unchanged)
  before asking the authentication server to compare it.
- `portfolios.txt` — a username on a line of its own, followed by the
  user's holdings, one per line: `<stock> <shares> <average buy price>`.
  A missing average price counts as 0. A username may have no holdings.
- `quotes.txt` — one stock per line: `<stock> <price> <price> ...`. The
  quote server starts at the first price of each stock and moves to the
  next price (wrapping around) after every buy or sell attempt on that
  stock.

## Running

Start each server in its own terminal, in the directory holding the data
files:

```
stocktrader-auth
stocktrader-portfolio
stocktrader-quotes
stocktrader-main
```

Options:

- `stocktrader-auth --members PATH --port PORT`
- `stocktrader-portfolio --portfolios PATH --port PORT`
- `stocktrader-quotes --quotes PATH --port PORT`
- `stocktrader-main --tcp-port PORT --udp-port PORT --retries N`
- `stocktrader-client --retries N`

The main server always looks for the back-end servers on their default
ports and the client always connects to the default main-server TCP port
(45569), so change the port options only when running the pieces
separately. The main server probes the back-end servers up to
`--retries` rounds (120 by default, a second apart, each probe waiting
up to two seconds for a reply) and exits with status 1 if they never all
answer. The client likewise tries to connect up to `--retries` times, a
second apart.

Then start one or more clients:

```
stocktrader-client
```

The client asks for a username and a password until the login succeeds,
then accepts these commands:

```
quote
quote <stock name>
buy <stock name> <number of shares>
sell <stock name> <number of shares>
position
exit
```

- `quote` lists every stock with its current price; `quote <stock>`
  shows one.
- `buy` and `sell` need a stock name and a positive number of shares.
  They show the current price and ask for a `Y`/`N` confirmation. A sell
  is refused if the member does not hold the stock or holds too few
  shares. A buy of a stock already held updates its average buy price.
- `position` lists the holdings with their average buy prices and the
  current profit, computed from the latest quotes and shown to two
  decimal places.
- `exit` ends the session.

## Using the pieces from Python

Each back-end server keeps its logic in a class whose `handle(message)`
method takes one request string and returns the reply, so it can be used
without a socket:

- `stocktrader.auth.AuthServer` with `load_members(path)` — answers
  `LOGIN <user> <hashed password>` with `OK` or `FAIL`.
- `stocktrader.portfolio.PortfolioServer` with `load_portfolios(path)`
  (holdings are `Holding` dataclasses) — answers `POSITION`, `BUY` and
  `SELL` requests.
- `stocktrader.quotes.QuoteServer` with `load_quotes(path)` (prices are
  held in `PriceSequence` objects with `current()` and `advance()`) —
  answers `QUOTEALL`, `QUOTE` and `ADVANCE` requests.

Each also has `serve(sock)`, which answers requests on a bound UDP
socket forever.

`stocktrader.main_server` provides `encrypt_password`, `compute_gain`,
`Backends` (the UDP link to the back-end servers), `wait_for_backends`
and `ClientSession` (one client's login and commands).
`stocktrader.client` provides `validate_command`, `connect_to_main` and
`TradingClient`. `stocktrader.protocol` holds the shared wire helpers:
`LineReader`, `send_line`, `frame_line`, `bind_udp`, `udp_send`,
`udp_receive` and `answer_ping`.

## Limitations

- Portfolios and price positions live only in the memory of the running
  servers. Trades are never written back to `portfolios.txt`, and
  restarting a server starts again from its data file.
- Everything runs on the loopback address; there is no option to serve
  or connect across machines.
- Passwords are protected only by the fixed character rotation described
  above; it is not a secure hash.