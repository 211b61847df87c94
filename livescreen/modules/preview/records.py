import hashlib
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ModuleRecord:
    """One source file after a build attempt. transformed is None when every strategy failed."""

    module_id: str
    kind: str
    path: str
    source: str
    transformed: Optional[str]
    dependencies: List[str] = field(default_factory=list)
    built_at: str = ""
    strategy: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.transformed is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def content_hash(*parts: Optional[str]) -> str:
    digest = hashlib.sha256()
    for part in parts:
        digest.update((part or "").encode("utf-8"))
        digest.update(b"\0")
    return digest.hexdigest()


def fingerprint(content: str, build_sequence: int) -> str:
    """ETag value that changes on every rebuild, even when content is identical."""
    return f'"{content[:16]}-{build_sequence}"'
