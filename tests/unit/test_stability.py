import pytest

from domains.voice_memos.stability import FileStabilityProbe, StableFileInfo


def scripted_stat(sizes):
    """Return a stat function replaying ``sizes`` (None means missing), counting polls."""
    polls = []

    def stat(path):
        size = sizes[len(polls)]
        polls.append(size)
        if size is None:
            raise FileNotFoundError(path)
        return StableFileInfo(path=path, size=size, mtime=1700000000.0)

    return stat, polls


def make_probe(stat, max_attempts=8, sleeps=None):
    return FileStabilityProbe(
        wait_interval=2.0,
        required_stable_checks=2,
        max_attempts=max_attempts,
        sleep=(sleeps.append if sleeps is not None else lambda s: None),
        stat=stat,
    )


def test_growing_then_steady_file_stabilizes_on_fifth_poll():
    stat, polls = scripted_stat([0, 0, 100, 100, 100, 100])
    sleeps = []

    info = make_probe(stat, sleeps=sleeps).wait_for_stable("/memos/a.m4a")

    assert info is not None
    assert info.size == 100
    assert len(polls) == 5
    assert sleeps == [2.0] * 4


def test_size_change_resets_the_stable_count():
    stat, polls = scripted_stat([100, 150, 150, 150])

    info = make_probe(stat).wait_for_stable("/memos/a.m4a")

    assert info.size == 150
    assert len(polls) == 4


def test_size_change_on_second_poll_is_not_stable_within_three_polls():
    # The read after a change only starts the count; two more equal reads are needed
    stat, polls = scripted_stat([100, 150, 150])

    assert make_probe(stat, max_attempts=3).wait_for_stable("/memos/a.m4a") is None
    assert len(polls) == 3


def test_strictly_growing_file_never_stabilizes():
    sizes = [10 * (i + 1) for i in range(8)]
    stat, polls = scripted_stat(sizes)
    sleeps = []

    assert make_probe(stat, max_attempts=8, sleeps=sleeps).wait_for_stable("/memos/a.m4a") is None
    assert len(polls) == 8
    # No pointless sleep after the final poll
    assert len(sleeps) == 7


def test_zero_byte_file_never_stabilizes():
    stat, polls = scripted_stat([0] * 8)

    assert make_probe(stat).wait_for_stable("/memos/empty.m4a") is None


def test_missing_file_is_polled_again_until_it_appears():
    stat, polls = scripted_stat([None, None, 42, 42, 42])

    info = make_probe(stat).wait_for_stable("/memos/moving.m4a")

    assert info.size == 42
    assert len(polls) == 5


def test_file_that_disappears_for_good_returns_none():
    stat, polls = scripted_stat([50, 50, None, None, None, None, None, None])

    assert make_probe(stat).wait_for_stable("/memos/gone.m4a") is None
    assert len(polls) == 8


def test_permission_errors_propagate():
    def stat(path):
        raise PermissionError(path)

    with pytest.raises(PermissionError):
        make_probe(stat).wait_for_stable("/memos/locked.m4a")


def test_real_file_on_disk(tmp_path):
    path = tmp_path / "memo.wav"
    path.write_bytes(b"RIFF" + b"\0" * 60)

    probe = FileStabilityProbe(wait_interval=0, sleep=lambda s: None)
    info = probe.wait_for_stable(str(path))

    assert info.path == str(path)
    assert info.size == 64
    assert info.mtime == path.stat().st_mtime
