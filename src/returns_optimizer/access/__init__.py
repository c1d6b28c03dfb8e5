"""Read-only access to the backing store."""

from returns_optimizer.access.directory import DistributorDirectory
from returns_optimizer.access.frames import FrameDataSource
from returns_optimizer.access.source import (
    DEFAULT_BATCH_SIZE,
    ReturnsDataSource,
    fetch_all_observations,
)

__all__ = [
    "ReturnsDataSource",
    "FrameDataSource",
    "DistributorDirectory",
    "fetch_all_observations",
    "DEFAULT_BATCH_SIZE",
]
