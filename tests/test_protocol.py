import socket

import pytest

from stocktrader.protocol import (
    ConnectionClosed,
    LineReader,
    answer_ping,
    bind_udp,
    frame_line,
    local_address,
    send_line,
    udp_receive,
    udp_send,
)


@pytest.fixture
def pair():
    left, right = socket.socketpair()
    yield left, right
    left.close()
    right.close()


@pytest.fixture
def udp_pair():
    first = bind_udp(0)
    second = bind_udp(0)
    first.settimeout(2)
    second.settimeout(2)
    yield first, second
    first.close()
    second.close()


def test_frame_line_adds_newline():
    assert frame_line("abc") == "abc\n"


def test_frame_line_keeps_existing_newline():
    assert frame_line("abc\n") == "abc\n"


def test_frame_line_empty_becomes_blank_line():
    assert frame_line("") == "\n"


def test_read_line_strips_carriage_returns(pair):
    left, right = pair
    left.sendall(b"hello\r\nworld\n")
    reader = LineReader(right)
    assert reader.read_line() == "hello"
    assert reader.read_line() == "world"


def test_read_line_across_partial_sends(pair):
    left, right = pair
    left.sendall(b"par")
    left.sendall(b"tial\n")
    assert LineReader(right).read_line() == "partial"


def test_read_block_stops_at_blank_line(pair):
    left, right = pair
    left.sendall(b"a\nb\n\nnext\n")
    reader = LineReader(right)
    assert reader.read_block() == "a\nb\n"
    assert reader.read_line() == "next"


def test_read_line_raises_on_close(pair):
    left, right = pair
    left.sendall(b"incomplete")
    left.close()
    with pytest.raises(ConnectionClosed):
        LineReader(right).read_line()


def test_send_line_round_trip(pair):
    left, right = pair
    send_line(left, "buy S1 10")
    send_line(left, "")
    reader = LineReader(right)
    assert reader.read_line() == "buy S1 10"
    assert reader.read_line() == ""


def test_local_address_uses_loopback():
    assert local_address(41569) == ("127.0.0.1", 41569)


def test_bind_udp_binds_loopback(udp_pair):
    first, _ = udp_pair
    host, port = first.getsockname()
    assert host == "127.0.0.1"
    assert port > 0


def test_udp_round_trip(udp_pair):
    first, second = udp_pair
    udp_send(first, "QUOTEALL alice", second.getsockname())
    text, sender = udp_receive(second)
    assert text == "QUOTEALL alice"
    assert sender == first.getsockname()


def test_udp_receive_timeout_returns_empty(udp_pair):
    first, _ = udp_pair
    first.settimeout(0.05)
    assert udp_receive(first) == ("", None)


def test_answer_ping_replies_pong(udp_pair):
    first, second = udp_pair
    udp_send(first, "PING", second.getsockname())
    msg, addr = udp_receive(second)
    assert answer_ping(second, msg, addr) is True
    assert udp_receive(first)[0] == "PONG"


def test_answer_ping_ignores_other_messages(udp_pair):
    first, second = udp_pair
    assert answer_ping(second, "LOGIN alice x", first.getsockname()) is False
    first.settimeout(0.05)
    assert udp_receive(first) == ("", None)