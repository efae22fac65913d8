from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from metrics.sinks.sqlite import SQLiteMetricsSink
from storage import TrackerStore


@contextmanager
def metrics_sink(db_url: str) -> Iterator[SQLiteMetricsSink]:
    sink = SQLiteMetricsSink(db_url)
    try:
        sink.ensure_tables()
        yield sink
    finally:
        sink.close()


@contextmanager
def tracker_store(db_url: str) -> Iterator[TrackerStore]:
    with TrackerStore(db_url) as store:
        yield store
