"""K-way merging of chunk series sets that are ordered by label sets."""

from __future__ import annotations

import hashlib
import heapq
import itertools
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Callable, Iterable, Iterator, Optional

Sample = tuple[int, float]
LabelsCompare = Callable[["Labels", "Labels"], int]
SeriesMerge = Callable[..., "ChunkSeries"]


@dataclass(frozen=True)
class Labels:
    """An immutable label set, kept sorted by label name."""

    pairs: tuple[tuple[str, str], ...] = ()

    def __post_init__(self) -> None:
        ordered = tuple(sorted((tuple(p) for p in self.pairs), key=lambda p: p[0]))
        object.__setattr__(self, "pairs", ordered)

    @classmethod
    def from_strings(cls, *args: str) -> "Labels":
        """Build a label set from alternating names and values."""
        if len(args) % 2:
            raise ValueError("from_strings needs an even number of strings")
        return cls(tuple(zip(args[::2], args[1::2])))

    def get(self, name: str) -> str:
        """Return the value of ``name``, or an empty string if it is absent."""
        for key, value in self.pairs:
            if key == name:
                return value
        return ""

    def hash(self) -> int:
        """Return a stable 64-bit hash of the label set."""
        digest = hashlib.blake2b(digest_size=8)
        for name, value in self.pairs:
            digest.update(name.encode() + b"\xff" + value.encode() + b"\xff")
        return int.from_bytes(digest.digest(), "big")

    def names(self) -> list[str]:
        """Return the label names in sorted order."""
        return [name for name, _ in self.pairs]

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def __str__(self) -> str:
        body = ", ".join(f'{name}="{value}"' for name, value in self.pairs)
        return "{" + body + "}"


@dataclass(frozen=True)
class ChunkMeta:
    """A chunk of samples covering ``[min_time, max_time]``."""

    min_time: int
    max_time: int
    samples: tuple[Sample, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "samples", tuple((int(t), float(v)) for t, v in self.samples))

    @property
    def num_samples(self) -> int:
        return len(self.samples)


@dataclass(frozen=True)
class ChunkSeries:
    """A label set together with its chunks."""

    labels: Labels
    chunks: tuple[ChunkMeta, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "chunks", tuple(self.chunks))

    def samples(self) -> list[Sample]:
        """Return every sample of every chunk, chunk by chunk."""
        return [sample for chunk in self.chunks for sample in chunk.samples]


def compare_labels(a: Labels, b: Labels) -> int:
    """Order label sets pair by pair, name before value, shorter first."""
    for (a_name, a_value), (b_name, b_value) in zip(a.pairs, b.pairs):
        if a_name != b_name:
            return -1 if a_name < b_name else 1
        if a_value != b_value:
            return -1 if a_value < b_value else 1
    return len(a) - len(b)


def compare_by_sorted_labels(sort_labels: Iterable[str]) -> LabelsCompare:
    """Return a comparison ordering first by the given labels, then by the whole set."""
    keys = list(sort_labels)

    def compare(a: Labels, b: Labels) -> int:
        for name in keys:
            a_value, b_value = a.get(name), b.get(name)
            if a_value != b_value:
                return -1 if a_value < b_value else 1
        return compare_labels(a, b)

    return compare


def _merge_overlapping(first: ChunkMeta, second: ChunkMeta) -> ChunkMeta:
    by_time: dict[int, float] = {}
    for t, v in itertools.chain(first.samples, second.samples):
        by_time.setdefault(t, v)
    return ChunkMeta(
        min_time=min(first.min_time, second.min_time),
        max_time=max(first.max_time, second.max_time),
        samples=tuple(sorted(by_time.items())),
    )


def chained_series_merge(*args: ChunkSeries) -> ChunkSeries:
    """Merge series with equal labels, compacting overlapping chunks into one."""
    if not args:
        raise ValueError("at least one series is required")
    if len(args) == 1:
        return args[0]
    chunks = sorted(
        (chunk for series in args for chunk in series.chunks),
        key=lambda c: (c.min_time, c.max_time),
    )
    merged: list[ChunkMeta] = []
    for chunk in chunks:
        if merged and chunk.min_time <= merged[-1].max_time:
            merged[-1] = _merge_overlapping(merged[-1], chunk)
        else:
            merged.append(chunk)
    return ChunkSeries(args[0].labels, tuple(merged))


class MergedChunkSeriesSet:
    """Iterator over several ordered series sets, merging equal label sets."""

    def __init__(
        self,
        sets: Iterable[Optional[Iterable[ChunkSeries]]],
        compare: LabelsCompare,
        merge_func: SeriesMerge,
    ) -> None:
        self._key = cmp_to_key(lambda a, b: compare(a.labels, b.labels))
        self._merge = merge_func
        self._tiebreak = itertools.count()
        self._heap: list[tuple[object, int, ChunkSeries, Iterator[ChunkSeries]]] = []
        self._pending: list[Iterator[ChunkSeries]] = []
        for series_set in sets:
            if series_set is not None:
                self._advance(iter(series_set))

    def _advance(self, it: Iterator[ChunkSeries]) -> None:
        series = next(it, None)
        if series is not None:
            heapq.heappush(self._heap, (self._key(series), next(self._tiebreak), series, it))

    def __iter__(self) -> "MergedChunkSeriesSet":
        return self

    def __next__(self) -> ChunkSeries:
        for it in self._pending:
            self._advance(it)
        self._pending = []
        if not self._heap:
            raise StopIteration
        head = self._heap[0][2].labels
        group: list[ChunkSeries] = []
        while self._heap and self._heap[0][2].labels == head:
            _, _, series, it = heapq.heappop(self._heap)
            group.append(series)
            self._pending.append(it)
        if len(group) == 1:
            return group[0]
        return self._merge(*group)


def merge_chunk_series_sets(
    sets: Iterable[Optional[Iterable[ChunkSeries]]],
    compare: LabelsCompare,
    merge_func: SeriesMerge,
) -> MergedChunkSeriesSet:
    """Merge ordered series sets into one ordered stream of series."""
    return MergedChunkSeriesSet(sets, compare, merge_func)