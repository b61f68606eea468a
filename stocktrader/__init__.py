"""Networked stock trading system: authentication, portfolio and quote servers, a main server and an interactive client."""

__version__ = "0.1.0"