from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional


@dataclass
class RegisteredComponent:
    registry_key: str
    module_id: str
    version: int
    code: str
    fingerprint: str
    source: str = "hot-reload"
    binding: Optional[str] = None
    helper_code: List[str] = field(default_factory=list)
    content_hash: Optional[str] = None
    installed_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self, include_code: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        if not include_code:
            data.pop("code")
            data.pop("helper_code")
        return data


class ComponentRegistry:
    """
    Last-known-good component per registry key for one session.

    Only successful swaps and injections install; failures leave the
    previous entry in place.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self._components: Dict[str, RegisteredComponent] = {}
        self.navigation: Optional[Dict[str, Any]] = None

    def install(self, component: RegisteredComponent) -> Optional[RegisteredComponent]:
        """Install a component, returning whatever it replaced."""
        previous = self._components.get(component.registry_key)
        self._components[component.registry_key] = component
        return previous

    def get(self, registry_key: str) -> Optional[RegisteredComponent]:
        return self._components.get(registry_key)

    def keys(self) -> List[str]:
        return sorted(self._components)

    def entries(self) -> List[RegisteredComponent]:
        return [self._components[k] for k in self.keys()]

    def __contains__(self, registry_key: str) -> bool:
        return registry_key in self._components

    def __len__(self) -> int:
        return len(self._components)
