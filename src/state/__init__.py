"""Private pipeline state: the retry queue and the last feed check."""

from .errors import StateFileError
from .json_file import read_json, write_json_atomic
from .last_check import LAST_CHECK_FILENAME, LastCheckState, LastCheckStore
from .retry_queue import QUEUE_FILENAME, ProcessingRecord, RecordState, RetryQueue

__all__ = [
    "LAST_CHECK_FILENAME",
    "LastCheckState",
    "LastCheckStore",
    "ProcessingRecord",
    "QUEUE_FILENAME",
    "RecordState",
    "RetryQueue",
    "StateFileError",
    "read_json",
    "write_json_atomic",
]
