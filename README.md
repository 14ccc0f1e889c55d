# pqconvert

`pqconvert` holds the in-memory logic for turning day-aligned time-series
blocks into columnar label and chunk files. It works out which days still
need converting. It merges series from several blocks in label order, cuts
series into shards, and encodes a day's chunks into per-day chunk columns.
It has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Planning conversions (`pqconvert.plan`)

A `Planner(not_after, max_days)` compares the days that TSDB blocks cover
with the days that parquet blocks already cover. `Planner.plan` takes two
mappings, each keyed by a stream key: one of `TSDBBlocksStream` and one of
`ParquetBlocksStream`. It returns a `Plan` whose `steps` are `Step`s, each
holding a `Date`, its source `BlockMeta`s (oldest first) and the stream's
external labels.

```python
from datetime import datetime, timezone

from pqconvert.plan import BlockMeta, Planner, TSDBBlocksStream

def ms(*args):
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)

stream = TSDBBlocksStream(
    external_labels={"stream": "eu-west-1"},
    metas=[BlockMeta(ulid="01JT0DPYGA1HPW5RBZ1KBXCNXK",
                     min_time=ms(2020, 1, 4, 12), max_time=ms(2020, 1, 7, 18))],
)
planner = Planner(not_after=None, max_days=7)
plan = planner.plan({0: stream}, {})
for step in plan.steps:
    print(step.date, [m.ulid for m in step.sources])
# 2020-01-06 ['01JT0DPYGA1HPW5RBZ1KBXCNXK']
# 2020-01-05 ['01JT0DPYGA1HPW5RBZ1KBXCNXK']
# 2020-01-04 ['01JT0DPYGA1HPW5RBZ1KBXCNXK']
```

Planning follows these rules:

- A stream is planned on its own. Its steps are ordered from the newest day
  to the oldest.
- Days whose midnight is not before `not_after` are skipped. A `not_after`
  of `None` sets no such limit.
- Days that a parquet block already overlaps are skipped, even if that block
  covers only part of the day.
- The most recent day is dropped unless some source reaches its start and
  some source reaches its end (`Step.is_fully_covered`).
- `max_days` is a soft limit. Steps past the limit are kept as long as they
  need no block that the earlier steps do not already use.

`Date` is a UTC calendar day. `min_t()` and `max_t()` give the milliseconds
at the start of the day and at the start of the next day. `to_datetime()`
gives midnight UTC. `Date.from_millis(ms)` returns the day that holds a
timestamp.

The helpers can also be called directly:

- `split_into_dates(mint, maxt)` returns the days that overlap `[mint, maxt)`.
- `truncate_last_partial_day`
- `limit_steps`
- `merge_dates`
- `merge_metas`, which removes repeated ULIDs.

## Merging series (`pqconvert.merge`)

`Labels` is an immutable label set, sorted by name.

- `Labels.from_strings` builds one from alternating names and values.
- `get(name)` returns `""` for a missing label.
- `hash()` returns a stable 64-bit value.

A `ChunkSeries` pairs a `Labels` with `ChunkMeta`s. Each `ChunkMeta` has a
`min_time`, a `max_time` and a tuple of `(timestamp, value)` samples.

`merge_chunk_series_sets(sets, compare, merge_func)` merges iterables of
`ChunkSeries`, each already sorted by `compare`, into one sorted iterator.
`None` entries are ignored. Series from different sets that have equal
labels are combined by `merge_func`.

- `compare_labels` orders whole label sets.
- `compare_by_sorted_labels(names)` compares the given labels first and then
  falls back to `compare_labels`.
- `chained_series_merge` sorts the chunks of all the series it is given. It
  joins overlapping chunks into one, and where timestamps repeat it keeps the
  first sample.

```python
from pqconvert.merge import (
    ChunkMeta, ChunkSeries, Labels,
    chained_series_merge, compare_by_sorted_labels, merge_chunk_series_sets,
)

a = [ChunkSeries(Labels.from_strings("__name__", "m", "job", "j1"),
                 [ChunkMeta(0, 0, [(0, 1.0)])])]
b = [ChunkSeries(Labels.from_strings("__name__", "m", "job", "j1"),
                 [ChunkMeta(100, 100, [(100, 2.0)])])]
for series in merge_chunk_series_sets([a, b], compare_by_sorted_labels(["__name__"]),
                                      chained_series_merge):
    print(series.labels, series.samples())
# {__name__="m", job="j1"} [(0, 1.0), (100, 2.0)]
```

## Sharding (`pqconvert.shard`)

A block index is given as an iterable of `IndexSeries`. Each `IndexSeries`
holds a reference, labels and chunks.

`sorted_series(blocks, mint, maxt, opts)` yields a `BlockSeries` for every
series that has a chunk overlapping `[mint, maxt]`. Series come out in the
order set by `sorted_series_less(opts)`: by `opts.sort_labels`, then by the
whole label set. Empty label sets sort last.

`shard_series(blocks, mint, maxt, opts)` returns two lists, each with one
entry per shard:

- the shard's series, grouped by block index;
- the label names the shard uses.

A new shard starts when the current one already holds
`opts.max_series_per_shard()` unique series. It also starts when the
shard's label columns, plus the chunk and index columns, would reach
`MAX_COLUMNS`. If no series is found, `NoSeriesError` (a `ValueError`) is
raised.

## Chunk encoding (`pqconvert.chunks`)

`collect_chunks(chunks)` sorts a day's chunks by start time and drops those
without samples. It places each remaining chunk in one of
`CHUNK_COLUMNS_PER_DAY` (3) columns, chosen by the 8-hour UTC window it
starts in. Each column is returned as a byte string. Each chunk is written
as:

- a big-endian header: a 32-bit encoding (`ENCODING_PLAIN`), the zigzag-encoded
  `min_time` and `max_time` as 64-bit values, and a 32-bit payload length;
- a payload of big-endian `(int64, float64)` sample pairs.

`decode_chunk_column` reverses this. It raises `ValueError` on truncated or
malformed input. `zigzag_encode` and `zigzag_decode` convert between signed
and unsigned 64-bit values. `all_chunks_empty(columns)` is true when no
column holds any bytes.

## Options and metrics (`pqconvert.options`)

`ConvertOptions` is a frozen dataclass with these defaults:

| Option | Default |
| --- | --- |
| `row_group_size` | 1,000,000 |
| `num_row_groups` | 6 |
| `encoding_concurrency` | 1 |
| `write_concurrency` | 1 |
| `sorting_columns` | `__name__` |
| `bloomfilter_columns` | `__name__` |
| `label_page_buffer_size` | 256 KiB |
| `chunk_page_buffer_size` | 2 MiB |

`sort_by(*labels)` returns a copy that sorts by the given labels.

`register_metrics(registry)` resets the `LAST_SUCCESSFUL_CONVERT_TIME`
`Gauge` (`last_successful_convert_time_unix_seconds`) to 0. It then adds the
gauge to a mutable mapping. A `ValueError` is raised if the name is already
registered.

## What this package does not do

- It does not read block indexes or chunks from disk.
- It does not write parquet files or upload anything to object storage.
- It does not discover existing blocks.
- It has no command-line program and no server.

The caller supplies block metadata and series as plain Python objects, and
does something of its own with the shards and encoded chunk columns that
come back.