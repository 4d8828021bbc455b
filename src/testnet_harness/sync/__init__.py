"""
Network synchronization measurement.

Measures how long a set of nodes takes to agree on one chain tip.
"""

from .errors import SyncErrorsInLogs, SyncTimeoutExceeded
from .measurer import (
    NodeReading,
    SyncNode,
    SyncSnapshot,
    SyncTimeMeasurer,
    measure_and_log_sync_time,
)
from .params import MeasurementReportInterval, SyncWaitParams

__all__ = [
    "MeasurementReportInterval",
    "NodeReading",
    "SyncErrorsInLogs",
    "SyncNode",
    "SyncSnapshot",
    "SyncTimeMeasurer",
    "SyncTimeoutExceeded",
    "SyncWaitParams",
    "measure_and_log_sync_time",
]
