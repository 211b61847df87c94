import os
import sys
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from livescreen.exceptions import InfrastructureError, SessionNotFoundError, UnknownModuleError
from livescreen.modules.session import ModuleKindRegistry, SessionStore, WorkspaceStatus
from livescreen.modules.workspace import HELPER, PRIMARY, WorkspaceLocator


@pytest.fixture
def project(make_workspace):
    return make_workspace({
        "package.json": '{"name": "demo"}',
        "src/App.tsx": "export default function App() { return null; }\n",
        "src/screens/Home/Home.tsx": "export default function Home() { return null; }\n",
        "src/screens/Home/styles.ts": "export const styles = {};\n",
        "src/screens/Home/hooks/useGreeting.ts": "export function useGreeting() {}\n",
        "src/screens/Home/utils/format.ts": "export const format = (v) => v;\n",
        "src/screens/Home/__tests__/Home.test.tsx": "test('x', () => {});\n",
        "src/screens/Settings/index.tsx": "export default function Settings() { return null; }\n",
        "src/screens/CartScreen.tsx": "export default function CartScreen() { return null; }\n",
        "src/utils/currency.ts": "export const currency = 'USD';\n",
        "src/components/Badge/index.tsx": "export default function Badge() { return null; }\n",
        "src/theme/colors.ts": "export const colors = { primary: '#000' };\n",
        "node_modules/react/index.js": "module.exports = {};\n",
    })


# Session store


@pytest.mark.asyncio
async def test_create_session_copies_source(session_store, project):
    """Test session creation copies the project into an owned workspace."""
    session = await session_store.create_session(source_path=str(project))

    assert len(session.session_id) == 36
    assert session.owns_workspace is True
    assert session.status == WorkspaceStatus.INITIALIZING
    assert session.workspace_root.parent == session_store.sessions_dir.resolve()
    assert (session.workspace_root / "src/screens/Home/Home.tsx").is_file()
    assert session.src_root == session.workspace_root / "src"


@pytest.mark.asyncio
async def test_create_session_skips_dependencies_and_tests(session_store, project):
    """Test node_modules and test files never reach the copy."""
    session = await session_store.create_session(source_path=str(project))

    assert not (session.workspace_root / "node_modules").exists()
    assert not (session.workspace_root / "src/screens/Home/__tests__").exists()


@pytest.mark.asyncio
async def test_copy_is_isolated_from_source(session_store, project):
    """Test edits to the copy leave the original untouched."""
    session = await session_store.create_session(source_path=str(project))

    (session.workspace_root / "src/App.tsx").write_text("changed")

    assert (project / "src/App.tsx").read_text() != "changed"


@pytest.mark.asyncio
async def test_adopt_existing_workspace(session_store, project):
    """Test a workspace root is edited in place and never deleted."""
    session = await session_store.create_session(workspace_root=str(project))

    assert session.owns_workspace is False
    assert session.workspace_root == project.resolve()

    assert await session_store.remove_session(session.session_id) is True
    assert project.is_dir()


@pytest.mark.asyncio
async def test_adopt_missing_root_fails(session_store, tmp_path):
    with pytest.raises(InfrastructureError):
        await session_store.create_session(workspace_root=str(tmp_path / "missing"))


@pytest.mark.asyncio
async def test_empty_session_gets_fresh_directory(session_store):
    session = await session_store.create_session()

    assert session.workspace_root.is_dir()
    assert list(session.workspace_root.iterdir()) == []


@pytest.mark.asyncio
async def test_require_unknown_session_raises(session_store):
    """Test require() raises a 404-mapped error for unknown ids."""
    assert session_store.get_session("nope") is None

    with pytest.raises(SessionNotFoundError) as exc_info:
        session_store.require("nope")

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_remove_session_deletes_owned_copy(session_store, project):
    session = await session_store.create_session(source_path=str(project))
    root = session.workspace_root

    assert await session_store.remove_session(session.session_id) is True
    assert not root.exists()
    assert session_store.get_session(session.session_id) is None
    assert await session_store.remove_session(session.session_id) is False


@pytest.mark.asyncio
async def test_list_sessions_in_creation_order(session_store):
    first = await session_store.create_session()
    second = await session_store.create_session()

    assert [s.session_id for s in session_store.list_sessions()] == [
        first.session_id,
        second.session_id,
    ]
    assert len(session_store) == 2


@pytest.mark.asyncio
async def test_session_to_dict(session_store, project):
    session = await session_store.create_session(source_path=str(project))

    data = session.to_dict()

    assert data["session_id"] == session.session_id
    assert data["source_path"] == str(project.resolve())
    assert data["status"] == "initializing"


def test_module_kind_is_fixed_on_first_sight():
    """Test a helper never becomes primary after being recorded."""
    kinds = ModuleKindRegistry()

    assert kinds.classify("screens/Home/hooks/useX.ts", HELPER) == HELPER
    assert kinds.classify("screens/Home/hooks/useX.ts", PRIMARY) == HELPER
    assert kinds.kind_of("screens/Home/hooks/useX.ts") == HELPER
    assert len(kinds) == 1


# Workspace locator


def test_list_screens(project):
    locator = WorkspaceLocator(project / "src")

    assert locator.list_screens() == ["CartScreen", "Home", "Settings"]


def test_find_screen_directory_layout(project):
    locator = WorkspaceLocator(project / "src")

    files = locator.find_screen("Home")

    assert files.component.name == "Home.tsx"
    assert [p.name for p in files.helpers] == ["styles.ts", "format.ts", "useGreeting.ts"]


def test_find_screen_index_and_single_file(project):
    locator = WorkspaceLocator(project / "src")

    assert locator.find_screen("Settings").component.name == "index.tsx"
    single = locator.find_screen("CartScreen")
    assert single.component.name == "CartScreen.tsx"
    assert single.helpers == []


@pytest.mark.parametrize("module_id", ["Missing", "../App", "Home/hooks", ""])
def test_find_screen_rejects_unknown(project, module_id):
    locator = WorkspaceLocator(project / "src")

    with pytest.raises(UnknownModuleError):
        locator.find_screen(module_id)


def test_owner_and_kind(project):
    locator = WorkspaceLocator(project / "src")
    home = project / "src/screens/Home"

    assert locator.owner_of(home / "hooks/useGreeting.ts") == "Home"
    assert locator.owner_of(project / "src/screens/CartScreen.tsx") == "CartScreen"
    assert locator.owner_of(project / "src/App.tsx") is None
    assert locator.kind_of(home / "Home.tsx") == PRIMARY
    assert locator.kind_of(home / "hooks/useGreeting.ts") == HELPER


def test_resolve_file_stays_inside_screen(project):
    locator = WorkspaceLocator(project / "src")

    assert locator.resolve_file("Home", "hooks/useGreeting.ts").name == "useGreeting.ts"
    with pytest.raises(UnknownModuleError):
        locator.resolve_file("Home", "../../App.tsx")
    with pytest.raises(UnknownModuleError):
        locator.resolve_file("CartScreen", "other.tsx")


def test_find_dependency_and_entry(project):
    locator = WorkspaceLocator(project / "src")

    assert locator.find_dependency("currency").name == "currency.ts"
    assert locator.find_dependency("Badge") == project / "src/components/Badge/index.tsx"
    assert locator.find_dependency("nothing") is None
    assert locator.find_dependency("../secrets") is None
    assert locator.find_entry().name == "App.tsx"


def test_context_files(project):
    locator = WorkspaceLocator(project / "src")

    assert set(locator.context_files()) == {"colors"}
