"""
Logging configuration for the command line runner.

Usage:
    from cfmm_arbitrage import logging_config
    logging_config.setup()
"""

import logging
import sys


def setup(level=logging.INFO):
    """
    Configure root logging for readable console output.

    - Short timestamps (HH:MM:SS)
    - Quiets HTTP request logs from web3's transport
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S"
    )
    console.setFormatter(formatter)
    root.addHandler(console)

    # Suppress noisy loggers
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    # Module loggers from get_logger() carry their own handler; route them
    # through the root handler instead
    for name in list(logging.root.manager.loggerDict):
        if name.split(".")[0] in ("cfmm_arbitrage", "dex"):
            package_logger = logging.getLogger(name)
            package_logger.handlers.clear()
            package_logger.setLevel(level)


def setup_debug():
    """Verbose logging, including web3 provider traffic."""
    setup(level=logging.DEBUG)
    logging.getLogger("web3").setLevel(logging.DEBUG)
