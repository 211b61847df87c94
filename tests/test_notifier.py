import asyncio
import os
import sys

import pytest
from watchfiles import Change

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from livescreen.modules.cache import CacheKey
from livescreen.modules.events import EventType
from livescreen.modules.notifier import ChangeNotifier, Debouncer, WorkspaceFilter

WINDOW = 0.05


@pytest.fixture
async def session(session_store, home_workspace):
    return await session_store.create_session(workspace_root=str(home_workspace))


@pytest.fixture
def notifier(session, module_cache, broker):
    return ChangeNotifier(session, module_cache, broker, debounce_window=WINDOW)


def home_file(session, relative="screens/Home/Home.tsx"):
    return str(session.src_root / relative)


async def settle():
    await asyncio.sleep(WINDOW * 4)


# Debouncer


@pytest.mark.asyncio
async def test_debouncer_runs_burst_once():
    debouncer = Debouncer(WINDOW)
    runs = []

    async def callback():
        runs.append(1)

    for _ in range(5):
        debouncer.schedule("key", callback)
        await asyncio.sleep(WINDOW / 5)

    assert debouncer.is_pending("key")
    await settle()

    assert runs == [1]
    assert debouncer.pending_count == 0


@pytest.mark.asyncio
async def test_debouncer_keys_are_independent():
    debouncer = Debouncer(WINDOW)
    runs = []

    debouncer.schedule("a", lambda: _record(runs, "a"))
    debouncer.schedule("b", lambda: _record(runs, "b"))
    await settle()

    assert sorted(runs) == ["a", "b"]


@pytest.mark.asyncio
async def test_debouncer_cancel_all():
    debouncer = Debouncer(WINDOW)
    runs = []

    debouncer.schedule("a", lambda: _record(runs, "a"))
    assert debouncer.cancel_all() == 1
    await settle()

    assert runs == []


@pytest.mark.asyncio
async def test_debouncer_survives_failing_callback():
    debouncer = Debouncer(WINDOW)
    runs = []

    async def boom():
        raise RuntimeError("listener bug")

    debouncer.schedule("a", boom)
    debouncer.schedule("b", lambda: _record(runs, "b"))
    await settle()

    assert runs == ["b"]


async def _record(runs, value):
    runs.append(value)


# Change notifier


@pytest.mark.asyncio
async def test_burst_of_writes_emits_one_event(notifier, session, broker):
    """Test N raw changes to one file within the window give one Change Event."""
    received = []

    async def listener(event):
        received.append(event)

    notifier.subscribe(listener)
    for _ in range(4):
        notifier.notify("change", home_file(session))
    await settle()

    assert len(received) == 1
    assert received[0].module_id == "Home"
    assert received[0].is_screen is True
    assert received[0].relative_path == "screens/Home/Home.tsx"
    assert len(broker.history(session.session_id, EventType.FILE_CHANGED)) == 1


@pytest.mark.asyncio
async def test_helper_change_is_owned_by_screen(notifier, session):
    received = []

    async def listener(event):
        received.append(event)

    notifier.subscribe(listener)
    notifier.notify("change", home_file(session, "screens/Home/hooks/useGreeting.ts"))
    await settle()

    assert received[0].module_id == "Home"
    assert notifier.changed_since_full_load() == ["Home"]


@pytest.mark.asyncio
async def test_has_pending_tracks_owning_screen(notifier, session):
    notifier.notify("change", home_file(session, "screens/Home/hooks/useGreeting.ts"))
    notifier.notify("change", home_file(session, "App.js"))

    assert notifier.has_pending("Home") is True
    assert notifier.has_pending("CartScreen") is False
    await settle()

    assert notifier.has_pending("Home") is False


@pytest.mark.asyncio
async def test_change_evicts_module_and_manifest(notifier, session, module_cache):
    sid = session.session_id
    await module_cache.put(CacheKey(sid, "Home"), {"code": "old"})
    await module_cache.put(CacheKey(sid, "CartScreen"), {"code": "cart"})
    await module_cache.put(CacheKey.manifest(sid), {"screens": []})

    notifier.notify("change", home_file(session))
    await settle()

    assert await module_cache.get(CacheKey(sid, "Home")) is None
    assert await module_cache.get(CacheKey.manifest(sid)) is None
    assert await module_cache.get(CacheKey(sid, "CartScreen")) == {"code": "cart"}


@pytest.mark.asyncio
async def test_non_screen_change_is_not_tracked(notifier, session):
    received = []

    async def listener(event):
        received.append(event)

    notifier.subscribe(listener)
    notifier.notify("change", str(session.src_root / "App.js"))
    await settle()

    assert received[0].is_screen is False
    assert notifier.changed_since_full_load() == []


@pytest.mark.asyncio
async def test_changed_set_is_distinct_and_resettable(notifier, session):
    """Test the changed set holds distinct screens until a full load."""
    notifier.notify("change", home_file(session))
    notifier.notify("change", home_file(session, "screens/Home/hooks/useGreeting.ts"))
    notifier.notify("change", home_file(session, "screens/CartScreen.tsx"))
    await settle()

    assert notifier.changed_since_full_load() == ["CartScreen", "Home"]

    notifier.acknowledge(["Home"])
    assert notifier.changed_since_full_load() == ["CartScreen"]

    notifier.mark_full_load()
    assert notifier.changed_since_full_load() == []


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery(notifier, session):
    received = []

    async def listener(event):
        received.append(event)

    unsubscribe = notifier.subscribe(listener)
    assert notifier.listener_count == 1
    unsubscribe()
    unsubscribe()

    notifier.notify("change", home_file(session))
    await settle()

    assert received == []
    assert notifier.emitted == 1


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others(notifier, session):
    received = []

    async def broken(event):
        raise RuntimeError("listener bug")

    async def listener(event):
        received.append(event)

    notifier.subscribe(broken)
    notifier.subscribe(listener)
    notifier.notify("change", home_file(session))
    await settle()

    assert len(received) == 1


@pytest.mark.asyncio
async def test_stop_cancels_pending_changes(notifier, session):
    received = []

    async def listener(event):
        received.append(event)

    notifier.subscribe(listener)
    notifier.notify("change", home_file(session))
    await notifier.stop()
    await settle()

    assert received == []
    assert notifier.listener_count == 0


@pytest.mark.slow
@pytest.mark.asyncio
async def test_watcher_picks_up_real_writes(notifier, session):
    """Test the filesystem watcher feeds the notifier."""
    received = []

    async def listener(event):
        received.append(event)

    notifier.subscribe(listener)
    await notifier.start()
    assert notifier.running
    await asyncio.sleep(0.3)

    (session.src_root / "screens/CartScreen.tsx").write_text("export default () => null;\n")
    for _ in range(50):
        if received:
            break
        await asyncio.sleep(0.1)
    await notifier.stop()

    assert received and received[0].module_id == "CartScreen"


# Watch filter


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/w/src/screens/Home/Home.tsx", True),
        ("/w/src/App.js", True),
        ("/w/package.json", True),
        ("/w/node_modules/react/index.js", False),
        ("/w/src/screens/Home/__tests__/Home.tsx", False),
        ("/w/src/screens/Home/Home.test.tsx", False),
        ("/w/.livescreen/shims/react.js", False),
        ("/w/src/.Home.tsx", False),
        ("/w/src/assets/logo.png", False),
    ],
)
def test_workspace_filter(path, expected):
    assert WorkspaceFilter()(Change.modified, path) is expected
