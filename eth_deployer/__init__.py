"""eth_deployer package root.

Resumable deployment and configuration reconciliation of the core messaging
contracts across EVM chains.

- :py:mod:`eth_deployer.core` for the core topology deployer

- :py:mod:`eth_deployer.deployer` for the generic resumable driver

"""

import sys


#: Minimum required Python version to run this package
MIN_PYTHON_VERSION = (3, 10)


def _check_python_version():
    """Try early abort if the Python version is too old."""

    # Use Python tuple comparison for version numbers
    # https://stackoverflow.com/a/1093331/315168
    if sys.version_info < MIN_PYTHON_VERSION:
        raise RuntimeError(f"web3-ethereum-deployer needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]} or later")


_check_python_version()
