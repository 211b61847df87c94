import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from . import shims

logger = logging.getLogger("livescreen.bundler.plugins")


@dataclass(frozen=True)
class Resolution:
    """Inline module contents substituted for a bare specifier."""

    specifier: str
    namespace: str
    contents: str


class BundlerPlugin:
    """One link in the resolution chain. Returning None passes to the next link."""

    name = "plugin"
    namespace = "livescreen"

    def resolve(self, specifier: str) -> Optional[Resolution]:
        raise NotImplementedError


class GlobalBindingPlugin(BundlerPlugin):
    """Framework packages resolve to globals the preview host page already loads."""

    name = "global-binding"
    namespace = "global-external"

    def resolve(self, specifier: str) -> Optional[Resolution]:
        if specifier == "react":
            contents = shims.GLOBAL_REACT
        elif specifier == "react/jsx-runtime" or specifier == "react/jsx-dev-runtime":
            contents = shims.JSX_RUNTIME
        elif specifier == "react-dom" or specifier.startswith("react-dom/"):
            contents = shims.GLOBAL_REACT_DOM
        elif specifier in ("react-native", "react-native-web"):
            contents = shims.REACT_NATIVE_WEB
        else:
            return None
        return Resolution(specifier, self.namespace, contents)


class ShimPlugin(BundlerPlugin):
    """Native-only packages resolve to inline browser shims."""

    name = "shim"
    namespace = "shim"

    SHIMS: Dict[str, str] = {
        "@react-native-async-storage/async-storage": shims.ASYNC_STORAGE,
        "@react-native-cookies/cookies": shims.COOKIES,
        "react-native-safe-area-context": shims.SAFE_AREA,
        "react-native-reanimated": shims.REANIMATED,
        "react-native-webview": shims.WEBVIEW,
        **shims.WIX_SDKS,
    }

    def resolve(self, specifier: str) -> Optional[Resolution]:
        contents = self.SHIMS.get(specifier)
        if contents is None and specifier.startswith("@wix/"):
            contents = shims.WIX_GENERIC
        if contents is None:
            return None
        return Resolution(specifier, self.namespace, contents)


class PluginChain:
    """
    Ordered resolution chain for bare import specifiers.

    The first plugin that answers wins; names no plugin answers are left
    to the host bundler.
    """

    def __init__(self, plugins: Optional[List[BundlerPlugin]] = None):
        self.plugins = plugins if plugins is not None else [GlobalBindingPlugin(), ShimPlugin()]

    def resolve(self, specifier: str) -> Optional[Resolution]:
        for plugin in self.plugins:
            resolution = plugin.resolve(specifier)
            if resolution is not None:
                logger.debug(f"{plugin.name} resolved {specifier}")
                return resolution
        return None

    def resolve_all(self, specifiers: Iterable[str]) -> Dict[str, Resolution]:
        """Resolutions for every answered specifier, de-duplicated in input order."""
        resolved: Dict[str, Resolution] = {}
        for specifier in specifiers:
            if specifier in resolved:
                continue
            resolution = self.resolve(specifier)
            if resolution is not None:
                resolved[specifier] = resolution
        return resolved
