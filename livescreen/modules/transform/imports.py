"""Static import scanning for external package dependencies."""

import re
from typing import Iterable, List

FRAMEWORK_PACKAGES = frozenset({"react", "react-native", "react-dom", "react-native-web"})

# Aliases that point back into the workspace, not at packages
LOCAL_ALIAS_PREFIXES = ("~/", "@/", "src/")

_SPECIFIER_PATTERNS = (
    re.compile(r"""\bimport\s+[^'";]*?\s+from\s*['"]([^'"]+)['"]""", re.S),
    re.compile(r"""\bimport\s*['"]([^'"]+)['"]"""),
    re.compile(r"""\bexport\s+[^'";]*?\s+from\s*['"]([^'"]+)['"]""", re.S),
    re.compile(r"""\brequire\s*\(\s*['"]([^'"]+)['"]\s*\)"""),
    re.compile(r"""\bimport\s*\(\s*['"]([^'"]+)['"]\s*\)"""),
)


def package_name(specifier: str) -> str:
    """Package part of a specifier: '@scope/pkg/sub' -> '@scope/pkg', 'pkg/sub' -> 'pkg'."""
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) >= 2:
        return "/".join(parts[:2])
    return parts[0]


def is_framework(specifier: str, framework_packages: Iterable[str] = FRAMEWORK_PACKAGES) -> bool:
    return package_name(specifier) in set(framework_packages)


def is_external(specifier: str) -> bool:
    if specifier.startswith((".", "/")):
        return False
    return not specifier.startswith(LOCAL_ALIAS_PREFIXES)


def scan_specifiers(source: str) -> List[str]:
    """Every module specifier referenced by a source, in first-seen order."""
    found = []
    for pattern in _SPECIFIER_PATTERNS:
        for match in pattern.finditer(source):
            found.append((match.start(), match.group(1)))
    seen = set()
    ordered = []
    for _, specifier in sorted(found):
        if specifier not in seen:
            seen.add(specifier)
            ordered.append(specifier)
    return ordered


def extract_dependencies(
    source: str, framework_packages: Iterable[str] = FRAMEWORK_PACKAGES
) -> List[str]:
    """
    External, non-framework package names a source imports.

    Relative paths, workspace aliases and framework packages (and their
    subpaths) are skipped. Names are de-duplicated in first-seen order.
    """
    frameworks = set(framework_packages)
    deps = []
    for specifier in scan_specifiers(source):
        if not is_external(specifier):
            continue
        name = package_name(specifier)
        if name in frameworks or name in deps:
            continue
        deps.append(name)
    return deps
