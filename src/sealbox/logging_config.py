"""Lightweight logging setup for applications embedding sealbox."""

import logging
import sys


def configure_logging(level: int = logging.INFO) -> None:
    # Configure root logger once; keep output simple for terminals.
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )
    # sealbox records are DEBUG by default; let them through when asked
    logging.getLogger("sealbox").setLevel(level)
