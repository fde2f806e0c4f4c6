"""Utility functions."""

import logging
import os
from pathlib import Path
from typing import Optional

import coloredlogs
from eth_typing import HexAddress

from eth_deployer.abi import ZERO_ADDRESS_STR


def eq_address(a: HexAddress | str | None, b: HexAddress | str | None) -> bool:
    """Compare two addresses, ignoring the EIP-55 checksum casing.

    ``None`` equals only ``None``.
    """
    if a is None or b is None:
        return a is None and b is None
    return a.lower() == b.lower()


def is_zero_address(address: HexAddress | str | None) -> bool:
    """Is the address missing or 0x0000...0000."""
    if not address:
        return True
    return address.lower() == ZERO_ADDRESS_STR


def setup_console_logging(
    default_log_level="warning",
    log_file: Path | None = None,
    std_out_log_level: Optional[int] = None,
    clear_log_file=True,
) -> logging.Logger:
    """Set up coloured log output.

    - Helper function to have nicer logging output in deployment scripts.
    - Tune down some noisy dependency library logging

    The log level is read from ``LOG_LEVEL`` environment variable.

    :param log_file:
        Output both console and this log file.

    :return:
        Root logger
    """

    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert numeric_level, f"No level: {level}"

    if not std_out_log_level:
        std_out_log_level = numeric_level

    fmt = "%(asctime)s %(name)-44s %(message)s"
    date_fmt = "%H:%M:%S"

    coloredlogs.install(level=std_out_log_level, fmt=fmt, date_fmt=date_fmt)

    if log_file:
        assert isinstance(log_file, Path), "log_file must be a Path"

        log_file.parent.mkdir(parents=True, exist_ok=True)

        # When using a file, the file is always logged with INFO level and
        # env var controls only terminal output
        min_level = min(logging.INFO, numeric_level)
        mode = "w" if clear_log_file else "a"

        file_handler = logging.FileHandler(log_file, mode=mode, encoding="utf-8")
        file_handler.setLevel(min_level)
        file_handler.setFormatter(logging.Formatter(fmt, date_fmt))

        root = logging.getLogger()
        root.setLevel(min_level)
        root.addHandler(file_handler)

    # Mute noise
    logging.getLogger("web3.providers.HTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("web3._utils.request").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)

    return logging.getLogger()
