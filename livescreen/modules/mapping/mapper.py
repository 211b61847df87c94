from __future__ import annotations

import logging
import os
import re
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

import yaml
from pydantic import BaseModel, Field, conint, field_validator

logger = logging.getLogger("livescreen.mapping")

PACKAGED_TABLE = os.path.join(os.path.dirname(__file__), "registry_map.yaml")

_KEY_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_SEPARATORS = re.compile(r"[\s_\-./]+")


class RegistryTableFile(BaseModel):
    version: conint(ge=1) = 1
    suffix: str = "screen"
    entries: Dict[str, str] = Field(default_factory=dict)

    @field_validator("entries")
    @classmethod
    def keys_must_be_kebab_case(cls, v: Dict[str, str]) -> Dict[str, str]:
        for module_id, key in v.items():
            if not _KEY_PATTERN.match(key):
                raise ValueError(f"registry key for {module_id} must be kebab-case: {key!r}")
        return v


def _candidate_paths(explicit: Optional[str]) -> List[Optional[str]]:
    """Return candidate file paths to search for the registry table."""
    return [
        explicit,
        os.getenv("REGISTRY_MAP_FILE"),
        # Project-relative override
        os.path.join(os.getcwd(), "config", "registry_map.yaml"),
        # Packaged default
        PACKAGED_TABLE,
    ]


def load_table(path: Optional[str] = None) -> RegistryTableFile:
    """Load the registry table.

    Lookup order:
    - explicit path argument
    - REGISTRY_MAP_FILE
    - config/registry_map.yaml
    - packaged registry_map.yaml
    Falls back to an empty table (fallback rule only) if none load.
    """
    for candidate in filter(None, _candidate_paths(path)):
        if not os.path.isfile(candidate):
            continue
        try:
            with open(candidate, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            loaded = RegistryTableFile(**data)
        except (OSError, yaml.YAMLError, ValueError) as e:
            logger.warning(f"Ignoring registry table {candidate}: {e}")
            continue
        logger.info(f"Loaded {len(loaded.entries)} registry mappings from {candidate}")
        return loaded
    logger.warning("No registry table found, using fallback rule only")
    return RegistryTableFile()


def split_words(module_id: str) -> List[str]:
    """'MemberAuthScreen' -> ['member', 'auth', 'screen']; also handles snake/kebab/spaces."""
    spaced = _WORD_BOUNDARY.sub(" ", module_id)
    return [w.lower() for w in _SEPARATORS.split(spaced) if w]


class IdentityMapper:
    """
    Translates on-disk module ids into runtime registry keys.

    The static table wins. Unknown ids use the fallback rule: split into
    lowercase words, drop a trailing suffix word, rejoin with '-' and append
    the suffix. The full-manifest path and the hot-swap path share one
    instance so they always agree.
    """

    def __init__(self, table: Optional[Dict[str, str]] = None, suffix: str = "screen"):
        self.table = dict(table or {})
        self.suffix = suffix

    @classmethod
    def from_file(cls, path: Optional[str] = None) -> "IdentityMapper":
        loaded = load_table(path)
        return cls(loaded.entries, loaded.suffix)

    def fallback(self, module_id: str) -> str:
        words = split_words(module_id)
        if words and words[-1] == self.suffix:
            words = words[:-1]
        if not words:
            return self.suffix
        return "-".join(words + [self.suffix])

    def resolve(self, module_id: str) -> str:
        return self.table.get(module_id) or self.fallback(module_id)

    def is_static(self, module_id: str) -> bool:
        return module_id in self.table

    def resolve_all(self, module_ids: Iterable[str]) -> Dict[str, str]:
        return {module_id: self.resolve(module_id) for module_id in module_ids}

    def verify(self, module_ids: Iterable[str]) -> Dict[str, List[str]]:
        """Registry keys that more than one of the given module ids resolve to."""
        owners = defaultdict(list)
        for module_id in module_ids:
            owners[self.resolve(module_id)].append(module_id)
        collisions = {key: sorted(ids) for key, ids in owners.items() if len(ids) > 1}
        for key, ids in collisions.items():
            logger.warning(f"Registry key {key} is claimed by {', '.join(ids)}")
        return collisions
