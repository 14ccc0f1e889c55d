"""Planning which days of TSDB blocks still need to be converted."""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

_EPOCH = _dt.datetime(1970, 1, 1, tzinfo=_dt.timezone.utc)
_DAY = _dt.timedelta(days=1)


def _millis(moment: _dt.datetime) -> int:
    return (moment - _EPOCH) // _dt.timedelta(milliseconds=1)


@dataclass(frozen=True, order=True)
class Date:
    """A UTC calendar day."""

    year: int
    month: int
    day: int

    def __post_init__(self) -> None:
        _dt.date(self.year, self.month, self.day)

    @classmethod
    def _from_date(cls, value: _dt.date) -> "Date":
        return cls(value.year, value.month, value.day)

    @classmethod
    def from_millis(cls, ms: int) -> "Date":
        """Return the UTC day containing the millisecond timestamp."""
        return cls._from_date((_EPOCH + _dt.timedelta(milliseconds=ms)).date())

    def to_datetime(self) -> _dt.datetime:
        """Return midnight UTC at the start of the day."""
        return _dt.datetime(self.year, self.month, self.day, tzinfo=_dt.timezone.utc)

    def min_t(self) -> int:
        """Milliseconds at the start of the day."""
        return _millis(self.to_datetime())

    def max_t(self) -> int:
        """Milliseconds at the start of the following day."""
        return _millis(self.to_datetime() + _DAY)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


def split_into_dates(mint: int, maxt: int) -> list[Date]:
    """Return every day overlapped by the range ``[mint, maxt)``."""
    first = Date.from_millis(mint).to_datetime().date()
    last = Date.from_millis(maxt - 1).to_datetime().date() if maxt > mint else first
    dates = []
    current = first
    while current <= last:
        dates.append(Date._from_date(current))
        current += _DAY
    return dates


@dataclass(frozen=True)
class BlockMeta:
    """Identity and time range of a TSDB block."""

    ulid: str
    min_time: int = 0
    max_time: int = 0


@dataclass(frozen=True)
class ParquetMeta:
    """Metadata of a converted parquet block."""

    date: Date
    mint: int
    maxt: int
    shards: int = 0
    converted_from_blids: tuple[str, ...] = ()


@dataclass
class TSDBBlocksStream:
    external_labels: dict[str, str] = field(default_factory=dict)
    metas: list[BlockMeta] = field(default_factory=list)


@dataclass
class ParquetBlocksStream:
    external_labels: dict[str, str] = field(default_factory=dict)
    metas: list[ParquetMeta] = field(default_factory=list)


@dataclass
class Step:
    """One day to convert and the TSDB blocks it is built from."""

    date: Date
    sources: list[BlockMeta] = field(default_factory=list)
    external_labels: dict[str, str] = field(default_factory=dict)

    def is_fully_covered(self) -> bool:
        """True if some source reaches the day's start and some reaches its end.

        Gaps in between are not considered.
        """
        mint, maxt = self.date.min_t(), self.date.max_t()
        got_min = any(s.min_time <= mint for s in self.sources)
        got_max = any(s.max_time >= maxt for s in self.sources)
        return got_min and got_max


@dataclass
class Plan:
    steps: list[Step] = field(default_factory=list)


def truncate_last_partial_day(steps: list[Step]) -> list[Step]:
    """Drop the most recent step if its day is not fully covered."""
    if steps and not steps[0].is_fully_covered():
        return steps[1:]
    return steps


def merge_dates(steps: Iterable[Step]) -> list[Date]:
    """Return the dates of all steps in order."""
    return [step.date for step in steps]


def merge_metas(steps: Iterable[Step]) -> list[BlockMeta]:
    """Return the source blocks of all steps, without repeating a ULID."""
    seen: set[str] = set()
    metas: list[BlockMeta] = []
    for step in steps:
        for meta in step.sources:
            if meta.ulid not in seen:
                seen.add(meta.ulid)
                metas.append(meta)
    return metas


def limit_steps(steps: list[Step], limit: int) -> list[Step]:
    """Keep at most ``limit`` steps, plus further ones needing no new block."""
    if len(steps) <= limit:
        return steps
    known = {meta.ulid for meta in merge_metas(steps[:limit])}
    for i in range(limit, len(steps)):
        if any(meta.ulid not in known for meta in steps[i].sources):
            break
        limit = i + 1
    return steps[:limit]


@dataclass(frozen=True)
class Planner:
    """Plans conversions of days older than ``not_after``, about ``max_days`` at a time."""

    not_after: Optional[_dt.datetime]
    max_days: int

    def _plan_stream(self, tsdb: TSDBBlocksStream, parquet: ParquetBlocksStream) -> Plan:
        tsdb_dates: dict[Date, list[BlockMeta]] = {}
        for meta in tsdb.metas:
            for date in split_into_dates(meta.min_time, meta.max_time):
                tsdb_dates.setdefault(date, []).append(meta)

        pq_dates = {date for meta in parquet.metas for date in split_into_dates(meta.mint, meta.maxt)}

        steps = [
            Step(date=date, sources=sorted(metas, key=lambda m: m.min_time))
            for date, metas in tsdb_dates.items()
            if (self.not_after is None or date.to_datetime() < self.not_after) and date not in pq_dates
        ]
        steps.sort(key=lambda s: s.date.min_t(), reverse=True)

        steps = truncate_last_partial_day(steps)
        steps = limit_steps(steps, self.max_days)
        return Plan(steps=steps)

    def plan(
        self,
        tsdb_streams: Mapping[object, TSDBBlocksStream],
        parquet_streams: Mapping[object, ParquetBlocksStream],
    ) -> Plan:
        """Plan conversions for every TSDB stream against its parquet stream."""
        out = Plan()
        for key, tsdb in tsdb_streams.items():
            parquet = parquet_streams.get(key, ParquetBlocksStream())
            for step in self._plan_stream(tsdb, parquet).steps:
                step.external_labels = dict(tsdb.external_labels)
                out.steps.append(step)
        return out