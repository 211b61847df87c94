"""
Shared pytest fixtures for livescreen tests.

This module provides common fixtures including:
- CompilerMocker: Mock esbuild subprocess calls with canned responses
- PassthroughCompiler: compiler stand-in that returns plain-script source unchanged
- Workspace builders that lay out screens on disk
- Redis mocks for cache/broker tests
"""

import os
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Pattern, Union
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from livescreen.modules.cache import MemoryCacheBackend, ModuleCache
from livescreen.modules.events import EventBroker
from livescreen.modules.mapping import IdentityMapper
from livescreen.modules.preview import PreviewService
from livescreen.modules.sandbox import ExecutionSandbox
from livescreen.modules.session import SessionStore
from livescreen.modules.transform import (
    CompileOutput,
    CompilerError,
    CompilerTransformer,
    PatternTransformer,
    SourceTransformer,
)


# =============================================================================
# Sample workspace sources (plain script, no JSX or type syntax)
# =============================================================================

HOME_SCREEN = textwrap.dedent(
    """\
    import React from 'react';
    import { View, Text } from 'react-native';
    import { track } from 'analytics-lib';
    import { useGreeting } from './hooks/useGreeting';

    export default function Home() {
      const greeting = useGreeting('visitor');
      track('home_viewed');
      return React.createElement(View, null, React.createElement(Text, null, greeting));
    }
    """
)

HOME_HOOK = textwrap.dedent(
    """\
    import { useMemo } from 'react';

    export function useGreeting(name) {
      return useMemo(() => 'Hello, ' + name, [name]);
    }
    """
)

CART_SCREEN = textwrap.dedent(
    """\
    import React from 'react';
    import { View, Text } from 'react-native';

    const CartScreen = () => {
      const { itemCount } = useCart();
      return React.createElement(View, null, React.createElement(Text, null, 'Items: ' + itemCount));
    };

    export default CartScreen;
    """
)

BROKEN_SCREEN = textwrap.dedent(
    """\
    import React from 'react';

    export default function Broken() {
      return React.createElement(View, null, (;
    }
    """
)


# =============================================================================
# Compiler Mocking Infrastructure
# =============================================================================

@dataclass
class CompilerResponse:
    """Represents a mocked esbuild process result."""
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0
    echo: bool = False  # Return stdin as stdout


class FakeProcess:
    """Just enough of asyncio.subprocess.Process for the compiler and bundler."""

    def __init__(self, response: CompilerResponse):
        self.response = response
        self.returncode: Optional[int] = None
        self.killed = False

    async def communicate(self, input: Optional[bytes] = None):
        self.returncode = self.response.returncode
        stdout = input if self.response.echo and input is not None else self.response.stdout.encode()
        return stdout, self.response.stderr.encode()

    def kill(self):
        self.killed = True

    async def wait(self):
        return self.returncode


class CompilerMocker:
    """
    Mock esbuild subprocess calls with pattern-matched responses.

    Intercepts asyncio.create_subprocess_exec so transform and bundle code
    can be tested without the esbuild binary.

    Usage:
        def test_bundle(compiler_mocker):
            compiler_mocker.register("--bundle", CompilerResponse(stdout="(() => {})();"))
            ...
            assert compiler_mocker.was_called_with("--format=iife")
    """

    def __init__(self):
        self._responses: List[tuple] = []
        self.calls: List[Dict] = []
        self.default_response = CompilerResponse(stderr="mock not configured", returncode=1)
        self.missing_binary = False

    def register(self, pattern: Union[str, Pattern], response: CompilerResponse) -> "CompilerMocker":
        self._responses.append((pattern, response))
        return self

    async def create_subprocess_exec(self, *args, **kwargs):
        command = " ".join(str(a) for a in args)
        self.calls.append({"args": list(args), "command": command, "cwd": kwargs.get("cwd")})
        if self.missing_binary:
            raise FileNotFoundError(2, "No such file or directory", args[0])

        response = self.default_response
        for pattern, candidate in self._responses:
            if isinstance(pattern, str) and pattern in command:
                response = candidate
                break
            if not isinstance(pattern, str) and pattern.search(command):
                response = candidate
                break
        return FakeProcess(response)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def was_called_with(self, pattern: str) -> bool:
        return any(pattern in call["command"] for call in self.calls)


@pytest.fixture
def compiler_mocker():
    """
    Fixture that provides a CompilerMocker with asyncio.create_subprocess_exec patched.
    """
    mocker = CompilerMocker()
    with patch("asyncio.create_subprocess_exec", side_effect=mocker.create_subprocess_exec):
        yield mocker


class PassthroughCompiler:
    """Compiler stand-in: returns the source untouched, counting calls."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0

    async def compile(self, source: str, filename: str = "module.tsx") -> CompileOutput:
        self.calls += 1
        if self.fail:
            raise CompilerError("compiler unavailable")
        return CompileOutput(code=source)


@pytest.fixture
def passthrough_compiler():
    return PassthroughCompiler()


@pytest.fixture
def transformer(passthrough_compiler):
    return SourceTransformer(CompilerTransformer(passthrough_compiler), PatternTransformer())


# =============================================================================
# Workspace and Pipeline Fixtures
# =============================================================================

@pytest.fixture
def make_workspace(tmp_path):
    """Factory writing {relative_path: content} under a fresh project directory."""

    def _make(files: Dict[str, str], name: str = "project") -> Path:
        root = tmp_path / name
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        root.mkdir(parents=True, exist_ok=True)
        return root

    return _make


@pytest.fixture
def home_workspace(make_workspace):
    return make_workspace({
        "package.json": '{"name": "demo-app", "version": "0.1.0", "dependencies": {"react": "18.2.0", "analytics-lib": "1.0.0"}}',
        "src/App.js": "export default function App() { return null; }\n",
        "src/screens/Home/Home.tsx": HOME_SCREEN,
        "src/screens/Home/hooks/useGreeting.ts": HOME_HOOK,
        "src/screens/CartScreen.tsx": CART_SCREEN,
    })


@pytest.fixture
def session_store(tmp_path):
    return SessionStore(str(tmp_path / "sessions"))


@pytest.fixture
def module_cache():
    return ModuleCache(MemoryCacheBackend(), module_ttl=30, manifest_ttl=60)


@pytest.fixture
def broker():
    return EventBroker(history_size=100)


@pytest.fixture
def mapper():
    return IdentityMapper({"HomeScreen": "home-screen", "HomeNavigation": "home-screen"})


@pytest.fixture
def sandbox():
    return ExecutionSandbox(timeout=2.0)


@pytest.fixture
def preview_service(module_cache, transformer, sandbox, mapper):
    return PreviewService(module_cache, transformer, sandbox, mapper)


# =============================================================================
# Redis Mocking Infrastructure
# =============================================================================

@pytest.fixture
def mock_redis():
    """Create a mock Redis client for async operations."""
    redis = AsyncMock()

    # Basic operations
    redis.setex = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.delete = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)

    # List operations
    redis.lpush = AsyncMock()
    redis.ltrim = AsyncMock()
    redis.lrange = AsyncMock(return_value=[])

    # Pub/sub
    redis.publish = AsyncMock()

    return redis


@pytest.fixture
def mock_redis_with_data():
    """
    Redis mock with in-memory data storage for more realistic tests.

    This allows testing code that reads back what it writes.
    """
    import fnmatch

    storage = {}
    redis = MagicMock()

    async def mock_setex(key, ttl, value):
        storage[key] = value
        return True

    async def mock_get(key):
        return storage.get(key)

    async def mock_delete(*keys):
        count = 0
        for key in keys:
            if key in storage:
                del storage[key]
                count += 1
        return count

    async def mock_scan_iter(match=None, count=None):
        for key in list(storage):
            if match is None or fnmatch.fnmatch(key, match):
                yield key

    redis.setex = mock_setex
    redis.get = mock_get
    redis.delete = mock_delete
    redis.scan_iter = mock_scan_iter
    redis._storage = storage  # Expose for test assertions

    return redis


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "compiler_mock: Tests using mocked esbuild subprocess calls"
    )
    config.addinivalue_line(
        "markers", "sandbox: Tests that evaluate script in a V8 context"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring infrastructure"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
