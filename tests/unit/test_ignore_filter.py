import time

import pytest

pytest.importorskip("watchdog", reason="watchdog dependency is required for filter tests")

from domains.normalizer.watchers.ignore_filter import IgnoreFilter


class ManualTimer:
    """Timer stand-in that only fires when told to."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False

    def start(self):
        self.started = True

    def fire(self):
        self.function()


def manual_filter(**kwargs):
    timers = []

    def factory(interval, function):
        timer = ManualTimer(interval, function)
        timers.append(timer)
        return timer

    return IgnoreFilter(timer_factory=factory, **kwargs), timers


@pytest.mark.parametrize(
    "name",
    ["scan.tmp", "scan.png.tmp", "scan.normalized.png", "scan.normalized.tmp", "SCAN.normalized.JPG"],
)
def test_artifact_markers_always_ignored(tmp_path, name):
    ignore_filter, timers = manual_filter()
    path = tmp_path / name

    assert ignore_filter.should_ignore(path) is True
    assert ignore_filter.should_ignore(path) is True
    assert not ignore_filter.is_recent(path)
    assert timers == []


def test_unsupported_extension_ignored(tmp_path):
    ignore_filter, timers = manual_filter()

    assert ignore_filter.should_ignore(tmp_path / "notes.txt") is True
    assert ignore_filter.should_ignore(tmp_path / "archive") is True
    assert timers == []


def test_extension_check_is_case_insensitive(tmp_path):
    ignore_filter, _ = manual_filter()

    assert ignore_filter.should_ignore(tmp_path / "PHOTO.JPG") is False
    assert ignore_filter.should_ignore(tmp_path / "scan.WebP") is False


def test_accepting_arms_suppression(tmp_path):
    ignore_filter, timers = manual_filter(window=2.0)
    path = tmp_path / "scan.png"

    assert ignore_filter.should_ignore(path) is False
    assert ignore_filter.is_recent(path)
    assert ignore_filter.should_ignore(path) is True

    assert len(timers) == 1
    assert timers[0].interval == 2.0
    assert timers[0].started

    timers[0].fire()
    assert not ignore_filter.is_recent(path)
    assert ignore_filter.should_ignore(path) is False


def test_membership_expires_with_real_timer(tmp_path):
    ignore_filter = IgnoreFilter(window=0.05)
    path = tmp_path / "scan.png"

    assert ignore_filter.should_ignore(path) is False
    assert ignore_filter.should_ignore(path) is True

    time.sleep(0.3)
    assert ignore_filter.should_ignore(path) is False


def test_remember_restarts_the_window(tmp_path):
    ignore_filter, timers = manual_filter()
    path = tmp_path / "scan.png"

    ignore_filter.should_ignore(path)
    ignore_filter.remember(path)
    assert len(timers) == 2

    # The stale expiry must not drop the fresher membership
    timers[0].fire()
    assert ignore_filter.is_recent(path)

    timers[1].fire()
    assert not ignore_filter.is_recent(path)


def test_paths_share_identity_after_normalization(tmp_path):
    ignore_filter, _ = manual_filter()

    ignore_filter.should_ignore(tmp_path / "scan.png")
    assert ignore_filter.should_ignore(tmp_path / "sub" / ".." / "scan.png") is True


def test_rename_scope_kinds():
    ignore_filter = IgnoreFilter(scope="rename")

    assert ignore_filter.is_relevant_kind("created")
    assert ignore_filter.is_relevant_kind("moved")
    assert not ignore_filter.is_relevant_kind("modified")
    assert not ignore_filter.is_relevant_kind("deleted")


def test_any_scope_kinds():
    ignore_filter = IgnoreFilter(scope="any")

    assert ignore_filter.is_relevant_kind("modified")
    assert ignore_filter.is_relevant_kind("closed")
    assert not ignore_filter.is_relevant_kind("deleted")
    assert not ignore_filter.is_relevant_kind("opened")


def test_unknown_scope_rejected():
    with pytest.raises(ValueError):
        IgnoreFilter(scope="everything")


if __name__ == "__main__":  # pragma: no cover
    pytest.main([__file__])
