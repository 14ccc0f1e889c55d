"""Conversion options and conversion metrics."""

from __future__ import annotations

import dataclasses
import time
from dataclasses import dataclass, field
from typing import MutableMapping

METRIC_NAME = "__name__"
KIB = 1024
MIB = 1024 * KIB


@dataclass(frozen=True)
class ConvertOptions:
    """Settings for converting TSDB blocks into parquet shards."""

    row_group_size: int = 1_000_000
    num_row_groups: int = 6
    encoding_concurrency: int = 1
    write_concurrency: int = 1
    sort_labels: tuple[str, ...] = ()
    sorting_columns: tuple[tuple[str, ...], ...] = ((METRIC_NAME,),)
    bloomfilter_columns: tuple[tuple[str, ...], ...] = ((METRIC_NAME,),)
    label_page_buffer_size: int = 256 * KIB
    chunk_page_buffer_size: int = 2 * MIB

    def sort_by(self, *args: str) -> "ConvertOptions":
        """Return options sorting series by the given labels, in order."""
        return dataclasses.replace(
            self,
            sort_labels=tuple(args),
            sorting_columns=tuple((name,) for name in args),
        )

    def max_series_per_shard(self) -> int:
        """Number of unique series after which a new shard is started."""
        return self.num_row_groups * self.row_group_size


@dataclass
class Gauge:
    """A named value that can go up and down."""

    name: str
    help: str
    value: float = field(default=0.0)

    def set(self, value: float) -> None:
        self.value = float(value)

    def set_to_current_time(self) -> None:
        """Set the value to the current Unix time in seconds."""
        self.value = time.time()


LAST_SUCCESSFUL_CONVERT_TIME = Gauge(
    name="last_successful_convert_time_unix_seconds",
    help="The timestamp the last conversion ran successfully.",
)


def register_metrics(registry: MutableMapping[str, Gauge]) -> None:
    """Reset the conversion metrics and add them to ``registry``.

    Raises ValueError if a metric of the same name is already registered.
    """
    LAST_SUCCESSFUL_CONVERT_TIME.set(0)
    name = LAST_SUCCESSFUL_CONVERT_TIME.name
    if name in registry:
        raise ValueError(f"metric {name!r} is already registered")
    registry[name] = LAST_SUCCESSFUL_CONVERT_TIME