[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "stocktrader"
version = "0.1.0"
description = "A small networked stock trading system: an authentication server, a portfolio server, a quote server, a main server and an interactive client."
requires-python = ">=3.10"
dependencies = []
keywords = ["stocks", "trading", "portfolio", "quotes", "tcp", "udp", "client-server"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Investment",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
stocktrader-auth = "stocktrader.auth:main"
stocktrader-quotes = "stocktrader.quotes:main"
stocktrader-portfolio = "stocktrader.portfolio:main"
stocktrader-main = "stocktrader.main_server:main"
stocktrader-client = "stocktrader.client:main"

[tool.setuptools.packages.find]
include = ["stocktrader*"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
