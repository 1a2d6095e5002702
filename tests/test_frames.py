import math

import polars as pl
import pytest

from packages.contracts.vocabulary.general import JobState
from packages.frames.frame import Frame
from packages.frames.job import Job
from packages.frames.keystore import DKV, KeyStore
from packages.frames.lockable import FrameLockedError
from packages.frames.vec import Vec


def test_from_polars_encodes_categoricals():
    df = pl.DataFrame(
        [
            pl.Series("grade", ["b", "a", None], dtype=pl.Enum(["b", "a"])),
            pl.Series("city", ["rome", "oslo", "rome"]),
            pl.Series("n", [1, 2, None]),
        ]
    )
    fr = Frame.from_polars(df)

    assert fr.domains() == [["b", "a"], ["oslo", "rome"], None]
    assert fr.vec("city").values.to_list() == [1.0, 0.0, 1.0]
    assert math.isnan(fr.vec("n").at(2))
    assert fr.to_polars()["grade"].to_list() == ["b", "a", None]


def test_frame_rejects_inconsistent_columns():
    with pytest.raises(ValueError):
        Frame(["a", "a"], [Vec([1.0]), Vec([2.0])])
    with pytest.raises(ValueError):
        Frame(["a", "b"], [Vec([1.0]), Vec([1.0, 2.0])])


def test_shallow_copy_shares_vecs():
    fr = Frame(["a"], [Vec([1.0, 2.0])])
    copy = Frame(fr)
    copy.add("b", Vec([3.0, 4.0]))

    assert fr.names == ["a"]
    assert copy.vecs()[0] is fr.vecs()[0]


@pytest.mark.parametrize("rows, n", [(10, 3), (2, 5), (0, 4)])
def test_partitions_cover_every_row_once(rows, n):
    fr = Frame(["a"], [Vec([float(i) for i in range(rows)])])
    ranges = fr.partitions(n)

    assert len(ranges) == n
    covered = [r for offset, length in ranges for r in range(offset, offset + length)]
    assert covered == list(range(rows))


def test_vec_remap_leaves_receiver_untouched():
    vec = Vec.from_strings(["x", "y", None])
    remapped = vec.remap([1, 0], ["y", "x"])

    assert vec.values.to_list()[:2] == [0.0, 1.0]
    assert remapped.values.to_list()[:2] == [1.0, 0.0]
    assert math.isnan(remapped.at(2))


def test_read_locked_frame_cannot_be_deleted():
    store = KeyStore()
    fr = Frame(["a"], [Vec([1.0])]).install(store)

    with fr.read_locked("job_1"):
        with pytest.raises(FrameLockedError):
            fr.delete(store)
    fr.delete(store)

    assert fr.key not in store
    assert fr.vecs()[0].removed


def test_job_records_failure():
    with pytest.raises(RuntimeError):
        with Job("doomed") as job:
            raise RuntimeError("boom")
    assert job.state == JobState.FAILED

    with Job("fine") as job:
        pass
    assert job.state == JobState.DONE
    assert job.finished_at >= job.started_at


def test_store_put_if_absent_keeps_first_value():
    DKV.put_if_absent("k", lambda: 1)
    assert DKV.put_if_absent("k", lambda: 2) == 1
