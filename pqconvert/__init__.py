"""Plan, merge, shard and chunk-encode day-aligned time-series blocks for columnar conversion."""

__version__ = "0.1.0"