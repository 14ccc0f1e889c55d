"""Ordering the series of several block indexes and cutting them into shards."""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Callable, Iterable, Iterator, Sequence

from pqconvert.chunks import CHUNK_COLUMNS_PER_DAY
from pqconvert.merge import ChunkMeta, Labels, compare_labels
from pqconvert.options import ConvertOptions

# A parquet file holds at most this many columns.
MAX_COLUMNS = (1 << 15) - 1

SeriesLess = Callable[["BlockSeries", "BlockSeries"], bool]


class NoSeriesError(ValueError):
    """Raised when no series of any block falls into the requested time range."""


@dataclass(frozen=True)
class IndexSeries:
    """A series as listed in a block index: its reference, labels and chunks."""

    ref: int
    labels: Labels
    chunks: tuple[ChunkMeta, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "chunks", tuple(self.chunks))

    def overlaps(self, mint: int, maxt: int) -> bool:
        """True if any chunk overlaps the closed range ``[mint, maxt]``."""
        return any(mint <= c.max_time and c.min_time <= maxt for c in self.chunks)


@dataclass(frozen=True)
class BlockSeries:
    """A series reference together with the position of its block in the input."""

    block_idx: int
    ref: int
    labels: Labels = field(default_factory=Labels)


def sorted_series_less(opts: ConvertOptions) -> SeriesLess:
    """Return the ordering of series: by the sort labels, then by the whole set.

    Series with empty label sets sort after every other series.
    """
    sort_labels = tuple(opts.sort_labels)

    def less(a: BlockSeries, b: BlockSeries) -> bool:
        if len(b.labels) == 0:
            return len(a.labels) != 0
        if len(a.labels) == 0:
            return False
        for name in sort_labels:
            a_value, b_value = a.labels.get(name), b.labels.get(name)
            if a_value != b_value:
                return a_value < b_value
        return compare_labels(a.labels, b.labels) < 0

    return less


def _block_series(
    block_idx: int, series: Iterable[IndexSeries], mint: int, maxt: int
) -> Iterator[BlockSeries]:
    ordered = sorted(series, key=cmp_to_key(lambda a, b: compare_labels(a.labels, b.labels)))
    for entry in ordered:
        if entry.overlaps(mint, maxt):
            yield BlockSeries(block_idx=block_idx, ref=entry.ref, labels=entry.labels)


def sorted_series(
    blocks: Sequence[Iterable[IndexSeries]],
    mint: int,
    maxt: int,
    opts: ConvertOptions,
) -> Iterator[BlockSeries]:
    """Yield the series of all blocks having chunks in ``[mint, maxt]``, in sort order.

    Each block's index is read in label order; series with equal labels from
    different blocks are yielded one after another, earlier blocks first.
    """
    less = sorted_series_less(opts)

    def compare(a: BlockSeries, b: BlockSeries) -> int:
        if less(a, b):
            return -1
        if less(b, a):
            return 1
        return 0

    streams = [_block_series(idx, series, mint, maxt) for idx, series in enumerate(blocks)]
    return heapq.merge(*streams, key=cmp_to_key(compare))


def shard_series(
    blocks: Sequence[Iterable[IndexSeries]],
    mint: int,
    maxt: int,
    opts: ConvertOptions,
) -> tuple[list[dict[int, list[BlockSeries]]], list[set[str]]]:
    """Split the ordered series of all blocks into shards.

    Returns, per shard, the series grouped by block index and the set of label
    names used in the shard. A new shard is started once the current one holds
    ``opts.max_series_per_shard()`` unique series or its columns would reach the
    parquet column limit. Raises NoSeriesError if no series was found.
    """
    shards: list[dict[int, list[BlockSeries]]] = [{}]
    label_columns: list[set[str]] = [set()]
    max_per_shard = opts.max_series_per_shard()
    unique_count = 0
    shard_unique_count = 0
    current: Labels | None = None

    for series in sorted_series(blocks, mint, maxt, opts):
        if series.labels != current:
            label_columns[-1].update(series.labels.names())
            too_many_columns = len(label_columns[-1]) + CHUNK_COLUMNS_PER_DAY + 1 >= MAX_COLUMNS
            if shard_unique_count >= max_per_shard or too_many_columns:
                shards.append({})
                label_columns.append(set(series.labels.names()))
                shard_unique_count = 0
            unique_count += 1
            shard_unique_count += 1
            current = series.labels
        shards[-1].setdefault(series.block_idx, []).append(series)

    if unique_count == 0:
        raise NoSeriesError("no series found in the specified time range")
    return shards, label_columns