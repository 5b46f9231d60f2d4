"""Standard exit codes for GridStream.

Exit codes follow Unix conventions; 130 is reserved for Ctrl-C.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes for GridStream commands."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    USAGE_ERROR = 2
    INPUT_ERROR = 3
    OUTPUT_ERROR = 4
    NETWORK_ERROR = 5
    TIMEOUT = 6
    CONFIG_ERROR = 7
    DATA_SOURCE_ERROR = 8
    CANCELLED = 130
