import pytest
from hypothesis import given
from hypothesis import strategies as st

from pqconvert.merge import (
    ChunkMeta,
    ChunkSeries,
    Labels,
    chained_series_merge,
    compare_by_sorted_labels,
    compare_labels,
    merge_chunk_series_sets,
)

NAME = "__name__"


def chunk(*samples):
    return ChunkMeta(min_time=samples[0][0], max_time=samples[-1][0], samples=samples)


def series(labels, *chunks):
    return ChunkSeries(labels, chunks)


L = Labels.from_strings

CASES = [
    (
        "sorted by __name__ with interleaved sets",
        [NAME],
        [
            [
                series(L(NAME, "metric_a", "job", "job1"), chunk((0, 1), (100, 2))),
                series(L(NAME, "metric_c", "job", "job1"), chunk((0, 5), (100, 6))),
            ],
            [
                series(L(NAME, "metric_b", "job", "job2"), chunk((0, 3), (100, 4))),
                series(L(NAME, "metric_d", "job", "job2"), chunk((0, 7), (100, 8))),
            ],
        ],
        [
            (L(NAME, "metric_a", "job", "job1"), [(0, 1), (100, 2)]),
            (L(NAME, "metric_b", "job", "job2"), [(0, 3), (100, 4)]),
            (L(NAME, "metric_c", "job", "job1"), [(0, 5), (100, 6)]),
            (L(NAME, "metric_d", "job", "job2"), [(0, 7), (100, 8)]),
        ],
    ),
    (
        "sorted by job with interleaved sets",
        ["job"],
        [
            [
                series(L(NAME, "metric_a", "job", "job1"), chunk((0, 1), (100, 2))),
                series(L(NAME, "metric_c", "job", "job3"), chunk((50, 5), (150, 6))),
            ],
            [
                series(L(NAME, "metric_b", "job", "job2"), chunk((100, 3), (200, 4))),
                series(L(NAME, "metric_d", "job", "job4"), chunk((200, 7), (300, 8))),
            ],
        ],
        [
            (L(NAME, "metric_a", "job", "job1"), [(0, 1), (100, 2)]),
            (L(NAME, "metric_b", "job", "job2"), [(100, 3), (200, 4)]),
            (L(NAME, "metric_c", "job", "job3"), [(50, 5), (150, 6)]),
            (L(NAME, "metric_d", "job", "job4"), [(200, 7), (300, 8)]),
        ],
    ),
    (
        "multi-key sort order (env, __name__)",
        ["env", NAME],
        [
            [
                series(L(NAME, "metric_a", "env", "prod"), chunk((0, 1))),
                series(L(NAME, "metric_b", "env", "prod"), chunk((0, 2))),
            ],
            [
                series(L(NAME, "metric_c", "env", "dev"), chunk((0, 3))),
                series(L(NAME, "metric_a", "env", "staging"), chunk((0, 4))),
            ],
        ],
        [
            (L(NAME, "metric_c", "env", "dev"), [(0, 3)]),
            (L(NAME, "metric_a", "env", "prod"), [(0, 1)]),
            (L(NAME, "metric_b", "env", "prod"), [(0, 2)]),
            (L(NAME, "metric_a", "env", "staging"), [(0, 4)]),
        ],
    ),
    (
        "multi-key sort order (__name__, env)",
        [NAME, "env"],
        [
            [
                series(L(NAME, "metric_a", "env", "dev"), chunk((0, 1))),
                series(L(NAME, "metric_b", "env", "prod"), chunk((0, 2))),
            ],
            [
                series(L(NAME, "metric_a", "env", "prod"), chunk((0, 3))),
                series(L(NAME, "metric_b", "env", "dev"), chunk((0, 4))),
            ],
        ],
        [
            (L(NAME, "metric_a", "env", "dev"), [(0, 1)]),
            (L(NAME, "metric_a", "env", "prod"), [(0, 3)]),
            (L(NAME, "metric_b", "env", "dev"), [(0, 4)]),
            (L(NAME, "metric_b", "env", "prod"), [(0, 2)]),
        ],
    ),
    (
        "multiple sets with collisions across sets",
        [NAME],
        [
            [
                series(L(NAME, "metric_a", "job", "j1"), chunk((0, 1))),
                series(L(NAME, "metric_c", "job", "j1"), chunk((0, 5))),
            ],
            [
                series(L(NAME, "metric_a", "job", "j1"), chunk((100, 2))),
                series(L(NAME, "metric_b", "job", "j2"), chunk((0, 3))),
            ],
            [
                series(L(NAME, "metric_b", "job", "j2"), chunk((100, 4))),
                series(L(NAME, "metric_d", "job", "j3"), chunk((0, 6))),
            ],
        ],
        [
            (L(NAME, "metric_a", "job", "j1"), [(0, 1), (100, 2)]),
            (L(NAME, "metric_b", "job", "j2"), [(0, 3), (100, 4)]),
            (L(NAME, "metric_c", "job", "j1"), [(0, 5)]),
            (L(NAME, "metric_d", "job", "j3"), [(0, 6)]),
        ],
    ),
]


@pytest.mark.parametrize("sort_labels,sets,expected", [c[1:] for c in CASES], ids=[c[0] for c in CASES])
def test_merge_chunk_series_set(sort_labels, sets, expected):
    merged = merge_chunk_series_sets(sets, compare_by_sorted_labels(sort_labels), chained_series_merge)
    got = [(s.labels, s.samples()) for s in merged]
    assert got == [(labels, [(t, float(v)) for t, v in samples]) for labels, samples in expected]


def test_merge_skips_missing_and_empty_sets():
    only = series(L(NAME, "x"), chunk((1, 1)))
    merged = list(merge_chunk_series_sets([None, [], [only]], compare_labels, chained_series_merge))
    assert merged == [only]


def test_from_strings_sorts_by_name():
    labels = L("b", "2", "a", "1")
    assert labels.names() == ["a", "b"]
    assert labels.get("b") == "2"
    assert labels.get("missing") == ""


def test_from_strings_rejects_odd_arguments():
    with pytest.raises(ValueError):
        L("a", "1", "b")


def test_hash_is_equal_for_equal_labels():
    assert L("a", "1", "b", "2").hash() == L("b", "2", "a", "1").hash()
    assert L("a", "1").hash() != L("a", "2").hash()


def test_compare_labels():
    assert compare_labels(L("a", "1"), L("a", "1")) == 0
    assert compare_labels(L("a", "1"), L("a", "2")) < 0
    assert compare_labels(L("b", "1"), L("a", "9")) > 0
    assert compare_labels(L("a", "1"), L("a", "1", "b", "1")) < 0


def test_compare_by_sorted_labels_uses_sort_keys_first():
    compare = compare_by_sorted_labels(["job"])
    assert compare(L("a", "z", "job", "1"), L("a", "a", "job", "2")) < 0
    assert compare(L("job", "1"), L("job", "1")) == 0


def test_chained_merge_compacts_overlapping_chunks():
    labels = L(NAME, "m")
    a = series(labels, chunk((0, 1), (100, 2)))
    b = series(labels, chunk((50, 3)))
    merged = chained_series_merge(a, b)
    assert merged.labels == labels
    assert len(merged.chunks) == 1
    assert merged.samples() == [(0, 1.0), (50, 3.0), (100, 2.0)]


def test_chained_merge_keeps_separate_chunks_sorted():
    labels = L(NAME, "m")
    merged = chained_series_merge(series(labels, chunk((200, 2))), series(labels, chunk((0, 1))))
    assert [c.min_time for c in merged.chunks] == [0, 200]


def test_chained_merge_requires_series():
    with pytest.raises(ValueError):
        chained_series_merge()


@given(
    st.lists(
        st.sets(st.sampled_from(["a", "b", "c", "d", "e"]), max_size=5),
        min_size=1,
        max_size=4,
    )
)
def test_merge_is_sorted_and_deduplicated(groups):
    sets = [[series(L(NAME, n, "job", "j"), chunk((0, 1.0))) for n in sorted(g)] for g in groups]
    merged = list(merge_chunk_series_sets(sets, compare_by_sorted_labels([NAME]), chained_series_merge))
    assert [s.labels.get(NAME) for s in merged] == sorted(set().union(*groups))
    assert all(s.samples() == [(0, 1.0)] for s in merged)