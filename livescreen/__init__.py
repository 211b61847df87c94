"""
Livescreen - Live Screen Preview Backend

An editor backend for editing individual screens of a running mobile-app
preview and seeing the changes live, without a full rebuild.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- config: Environment configuration
- session: Workspace session lifecycle
- workspace: Conventional source file locations
- transform: Typed source to executable script
- cache: TTL cache for modules, manifests and bundles
- storage: Redis connection management
- events: Real-time channel to preview clients
- notifier: Workspace file watching and change coalescing
- mapping: Module id to registry key translation
- sandbox: Closed evaluation of transformed modules
- preview: Manifest and module definitions
- hotswap: Live component replacement
- bundler: Full standalone bundle builds
"""

__version__ = "1.0.0"
