import datetime
import tempfile
from pathlib import Path

from conftest import TimerRecorder
from hypothesis import given
from hypothesis import strategies as st

from dotsync.aggregator import Debouncer
from dotsync.composer import CommitCategory, build_commit_message, classify
from dotsync.constants import CATEGORY_DIRS, PREVIEW_LIMIT
from dotsync.observer import ChangeEvent, ChangeKind
from dotsync.state import StateStore, SyncState

ROOT = Path("/home/user/.claude")

# Strategy: simple path segments (no separators, no dot-only names)
segment = st.text(
    alphabet="abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-",
    min_size=1,
    max_size=8,
)

timestamps = st.none() | st.datetimes(
    min_value=datetime.datetime(2000, 1, 1),
    max_value=datetime.datetime(2100, 1, 1),
    timezones=st.just(datetime.timezone.utc),
)


@given(names=st.lists(st.sampled_from(["a", "b", "c", "d"]), min_size=1, max_size=30))
def test_debounce_coalesces_any_event_burst(names: list[str]) -> None:
    """
    Property: any burst of events inside one quiet period produces exactly one
    flush holding every distinct path once, in first-seen order.
    """
    timers = TimerRecorder()
    flushed: list[tuple[Path, ...]] = []
    debouncer = Debouncer(30, flushed.append, timer_factory=timers)

    for name in names:
        debouncer.submit(ChangeEvent(path=ROOT / name, kind=ChangeKind.MODIFIED))
    timers.fire_live()

    assert flushed == [tuple(ROOT / n for n in dict.fromkeys(names))]


@given(category=st.sampled_from(CATEGORY_DIRS), rest=st.lists(segment, min_size=1))
def test_classify_named_directories(category: str, rest: list[str]) -> None:
    rel = "/".join([category, *rest])

    assert classify(rel) is CommitCategory(category)


@given(first=segment, rest=st.lists(segment))
def test_classify_everything_else_is_other(first: str, rest: list[str]) -> None:
    rel = "/".join([first, *rest])
    if first in CATEGORY_DIRS and rest:
        return

    assert classify(rel) is CommitCategory.OTHER


@given(names=st.lists(segment, min_size=1, max_size=20, unique=True))
def test_commit_preview_is_bounded(names: list[str]) -> None:
    lines = build_commit_message([ROOT / n for n in names], ROOT).splitlines()

    previews = [line for line in lines if line.startswith("- ")]
    assert len(previews) == min(len(names), PREVIEW_LIMIT)
    has_suffix = lines[-1] == f"...and {len(names) - PREVIEW_LIMIT} more"
    assert has_suffix == (len(names) > PREVIEW_LIMIT)


@given(commit=timestamps, push=timestamps, pending=st.booleans())
def test_state_save_load_is_idempotent(
    commit: datetime.datetime | None, push: datetime.datetime | None, pending: bool
) -> None:
    """
    Property: saving a freshly loaded state writes a file that loads back to
    an identical value.
    """
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "state.json"
        store = StateStore(path)
        store.save(SyncState(commit, push, pending))

        loaded = store.load()
        first_bytes = path.read_bytes()
        store.save(loaded)

        assert store.load() == loaded == SyncState(commit, push, pending)
        assert path.read_bytes() == first_bytes
