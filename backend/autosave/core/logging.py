"""Logging configuration."""
import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(stream=sys.stdout, level=level.upper(), format=fmt)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    # web3 logs every RPC request at DEBUG
    logging.getLogger("web3").setLevel(logging.INFO)
