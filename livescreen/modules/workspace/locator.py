import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from livescreen.exceptions import UnknownModuleError

logger = logging.getLogger("livescreen.workspace")

SOURCE_EXTENSIONS = (".tsx", ".ts", ".jsx", ".js")
ENTRY_CANDIDATES = ("App.tsx", "App.js", "index.tsx", "index.js")
STYLE_CANDIDATES = ("styles.ts", "styles.tsx", "styles.js")
SCREENS_DIR = "screens"

PRIMARY = "primary"
HELPER = "helper"


@dataclass
class ScreenFiles:
    """The conventional files that make up one screen module."""

    module_id: str
    component: Path
    directory: Optional[Path] = None
    styles: Optional[Path] = None
    hooks: List[Path] = field(default_factory=list)
    utils: List[Path] = field(default_factory=list)

    @property
    def helpers(self) -> List[Path]:
        """Helper files in evaluation order: styles, utils, then hooks."""
        ordered = [self.styles] if self.styles else []
        return ordered + self.utils + self.hooks

    def all_files(self) -> List[Path]:
        return [self.component] + self.helpers


def _source_files(directory: Path) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.suffix in SOURCE_EXTENSIONS and not p.name.startswith(".")
    )


class WorkspaceLocator:
    """
    Finds modules in the small fixed set of conventional locations.

    Screens live at src/screens/<Id>/<Id>.tsx (or index.tsx) with optional
    hooks/, utils/ and styles.ts beside them, or as a single file
    src/screens/<Id>.tsx. There is no general dependency resolution.
    """

    def __init__(self, src_root: Path):
        self.src_root = Path(src_root)
        self.screens_root = self.src_root / SCREENS_DIR

    def list_screens(self) -> List[str]:
        """All screen module ids, sorted."""
        if not self.screens_root.is_dir():
            return []

        screens = set()
        for entry in self.screens_root.iterdir():
            if entry.name.startswith(".") or entry.name == "__tests__":
                continue
            if entry.is_dir() and self._component_in(entry) is not None:
                screens.add(entry.name)
            elif entry.is_file() and entry.suffix in SOURCE_EXTENSIONS:
                screens.add(entry.stem)
        return sorted(screens)

    def _component_in(self, directory: Path) -> Optional[Path]:
        for stem in (directory.name, "index"):
            for ext in SOURCE_EXTENSIONS:
                candidate = directory / f"{stem}{ext}"
                if candidate.is_file():
                    return candidate
        return None

    def find_screen(self, module_id: str) -> ScreenFiles:
        """
        Locate the files for a screen.

        Raises:
            UnknownModuleError: If no conventional location holds the screen
        """
        if not module_id or "/" in module_id or "\\" in module_id or module_id.startswith("."):
            raise UnknownModuleError(module_id)

        directory = self.screens_root / module_id
        if directory.is_dir():
            component = self._component_in(directory)
            if component is not None:
                styles = next(
                    (directory / n for n in STYLE_CANDIDATES if (directory / n).is_file()),
                    None,
                )
                return ScreenFiles(
                    module_id=module_id,
                    component=component,
                    directory=directory,
                    styles=styles,
                    hooks=_source_files(directory / "hooks"),
                    utils=_source_files(directory / "utils"),
                )

        for ext in SOURCE_EXTENSIONS:
            single = self.screens_root / f"{module_id}{ext}"
            if single.is_file():
                return ScreenFiles(module_id=module_id, component=single)

        raise UnknownModuleError(module_id)

    def owner_of(self, path: Path) -> Optional[str]:
        """The screen id that owns a file, or None for files outside src/screens."""
        try:
            relative = Path(path).resolve().relative_to(self.screens_root.resolve())
        except ValueError:
            return None
        parts = relative.parts
        if not parts:
            return None
        if len(parts) == 1:
            return Path(parts[0]).stem if Path(parts[0]).suffix else parts[0]
        return parts[0]

    def kind_of(self, path: Path) -> str:
        """primary for a screen's component file, helper for everything else."""
        owner = self.owner_of(path)
        if owner is None:
            return HELPER
        try:
            files = self.find_screen(owner)
        except UnknownModuleError:
            return HELPER
        return PRIMARY if Path(path).resolve() == files.component.resolve() else HELPER

    def relative(self, path: Path) -> str:
        try:
            return Path(path).resolve().relative_to(self.src_root.resolve()).as_posix()
        except ValueError:
            return Path(path).name

    def resolve_file(self, module_id: str, file_name: str) -> Path:
        """
        Resolve a file name inside a screen for raw read/update.

        Accepts the component file name, styles, or hooks/<f> and utils/<f>.
        Paths escaping the screen directory are rejected.
        """
        files = self.find_screen(module_id)
        if files.directory is None:
            if file_name != files.component.name:
                raise UnknownModuleError(f"{module_id}/{file_name}")
            return files.component

        target = (files.directory / file_name).resolve()
        if files.directory.resolve() not in target.parents:
            raise UnknownModuleError(f"{module_id}/{file_name}")
        if target.suffix not in SOURCE_EXTENSIONS:
            raise UnknownModuleError(f"{module_id}/{file_name}")
        return target

    def find_dependency(self, name: str) -> Optional[Path]:
        """Search utils/, lib/, components/<name>/index and hooks/ for a named module."""
        if not name or ".." in name:
            return None
        candidates = []
        for folder in ("utils", "lib"):
            candidates.extend(self.src_root / folder / f"{name}{ext}" for ext in SOURCE_EXTENSIONS)
        candidates.extend(
            self.src_root / "components" / name / f"index{ext}" for ext in SOURCE_EXTENSIONS
        )
        candidates.extend(self.src_root / "hooks" / f"{name}{ext}" for ext in SOURCE_EXTENSIONS)
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        return None

    def find_entry(self) -> Optional[Path]:
        """The app entry file (App.tsx, App.js, index.tsx, index.js)."""
        roots = [self.src_root]
        if self.src_root.name == "src":
            roots.append(self.src_root.parent)
        for root in roots:
            for name in ENTRY_CANDIDATES:
                candidate = root / name
                if candidate.is_file():
                    return candidate
        return None

    def context_files(self) -> Dict[str, Path]:
        """Context and design-token modules the sandbox reads defaults from."""
        found = {}
        for folder in ("context", "contexts", "theme", "constants", "styles"):
            for path in _source_files(self.src_root / folder):
                found.setdefault(path.stem, path)
        return found
