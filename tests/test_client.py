import io
import socket

import pytest

from stocktrader.client import TradingClient, connect_to_main, validate_command
from stocktrader.protocol import ConnectionClosed


@pytest.fixture
def connection():
    listener = socket.create_server(("127.0.0.1", 0))
    client = socket.create_connection(listener.getsockname())
    server, _ = listener.accept()
    listener.close()
    client.settimeout(5)
    server.settimeout(5)
    yield client, server
    client.close()
    server.close()


def _drain(sock):
    chunks = []
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return b"".join(chunks).decode("utf-8")
        chunks.append(chunk)


def _session(connection, replies, inputs):
    client, server = connection
    server.sendall(replies.encode("utf-8"))
    out = io.StringIO()
    code = TradingClient(client, io.StringIO(inputs), out).run()
    client.shutdown(socket.SHUT_WR)
    return code, out.getvalue(), _drain(server)


LOGIN_OK = "Authentication successful\n"
STOCK_ERROR = "[Client] Error: stock name does not exist. Please check again\n\n"


def test_well_formed_commands_pass_validation(connection):
    replies = LOGIN_OK + STOCK_ERROR + STOCK_ERROR
    code, out, sent = _session(connection, replies, "alice\npassword\nbuy S1 5\nsell S2 1\nexit\n")
    assert code == 0
    assert "Please specify a stockname" not in out
    assert sent == "alice\npassword\nbuy S1 5\nsell S2 1\nexit\n"


@pytest.mark.parametrize("cmd", ["buy S1", "buy", "buy S1 0", "buy S1 -3", "buy S1 abc"])
def test_validate_command_rejects(cmd):
    with pytest.raises(ValueError, match="Please specify a stockname to buy."):
        validate_command(cmd, "buy")


def test_connect_to_main_with_no_attempts_fails():
    with pytest.raises(ConnectionError, match="Could not connect after 0 tries"):
        connect_to_main(0, 0)


def test_login_retries_until_accepted(connection):
    client, server = connection
    server.sendall(b"Authentication failed\nAuthentication successful\n")
    out = io.StringIO()
    session = TradingClient(client, io.StringIO("alice\nsecret\nalice\npassword\n"), out)
    assert session.login() == "alice"
    text = out.getvalue()
    assert "[Client] The credentials are incorrect. Please try again." in text
    assert text.endswith("[Client] You have been granted access.\n")
    client.shutdown(socket.SHUT_WR)
    assert _drain(server) == "alice\nsecret\nalice\npassword\n"


def test_login_raises_when_server_closes(connection):
    client, server = connection
    server.shutdown(socket.SHUT_WR)
    session = TradingClient(client, io.StringIO("alice\npassword\n"), io.StringIO())
    with pytest.raises(ConnectionClosed):
        session.login()


def test_quote_prints_block_and_port(connection):
    client, _ = connection
    port = client.getsockname()[1]
    code, out, sent = _session(connection, LOGIN_OK + "S1 10.00\nS2 20.00\n\n", "alice\npassword\nquote\nexit\n")
    assert code == 0
    assert "S1 10.00\nS2 20.00\n" in out
    assert f"using TCP over port {port}." in out
    assert sent == "alice\npassword\nquote\nexit\n"


def test_buy_confirmed(connection):
    replies = LOGIN_OK + "[Client] S1's current price is 10.00. Proceed to buy? (Y/N)\n\nOK\n\n"
    code, out, sent = _session(connection, replies, "alice\npassword\nbuy S1 5\nmaybe\ny\nexit\n")
    assert "[Client] Invalid input. Please enter 'Y' or 'N': " in out
    assert "alice successfully bought 5 shares of S1." in out
    assert sent == "alice\npassword\nbuy S1 5\ny\nexit\n"


def test_buy_error_skips_confirmation(connection):
    replies = LOGIN_OK + STOCK_ERROR
    code, out, sent = _session(connection, replies, "alice\npassword\nbuy S9 5\nexit\n")
    assert "[Client] Error: stock name does not exist." in out
    assert sent == "alice\npassword\nbuy S9 5\nexit\n"


def test_sell_denied_reports_failure(connection):
    replies = LOGIN_OK + "[Client] S1 current price is 10.00. Proceed to sell? (Y/N)\n\nDENIED\n\n"
    code, out, sent = _session(connection, replies, "alice\npassword\nsell S1 2\nn\nexit\n")
    assert "[Server M] Sell request for 2 shares of S1 failed." in out
    assert sent == "alice\npassword\nsell S1 2\nn\nexit\n"


def test_invalid_input_is_not_sent(connection):
    code, out, sent = _session(connection, LOGIN_OK, "alice\npassword\nhello\nbuy S1\nexit\n")
    assert "[Client] Invalid command. Please try again." in out
    assert "Please specify a stockname to buy." in out
    assert sent == "alice\npassword\nexit\n"


def test_end_of_input_sends_exit(connection):
    code, out, sent = _session(connection, LOGIN_OK, "alice\npassword\n")
    assert code == 0
    assert out.endswith("[Client] Exiting the client.\n")
    assert sent.endswith("exit\n")