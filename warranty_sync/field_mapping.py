"""
Warranty Sync - Field Mapping Resolver

Each target attribute resolves independently: an active operator mapping
(a dotted path into the raw record) wins; otherwise the hard-coded default
extractor for that attribute runs. Record types are only ever selectively
overridden, never fully custom-mapped.
"""

from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from .models import FieldMapping

DefaultExtractor = Callable[[Mapping[str, Any]], Any]

_ABSENT = object()


def _step(current: Any, key: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(key, _ABSENT)
    if isinstance(current, (list, tuple)) and key.isdecimal():
        index = int(key)
        return current[index] if index < len(current) else _ABSENT
    return _ABSENT


def get_nested_value(record: Any, path: str, default: Any = None) -> Any:
    """
    Walk ``path`` (``"System.label"``) through ``record``.

    A missing or null segment ends the walk with ``default``; the walk never
    raises.
    """
    current = record
    for key in path.split("."):
        if current is None:
            return default
        current = _step(current, key)
        if current is _ABSENT:
            return default
    return current


class FieldMappingResolver:
    """Active mappings for one sync run, keyed by ``(record_type, app_field)``."""

    def __init__(self, paths: Optional[Dict[Tuple[str, str], str]] = None):
        self._paths: Dict[Tuple[str, str], str] = dict(paths or {})

    @classmethod
    def from_mappings(cls, mappings: Iterable[FieldMapping]) -> "FieldMappingResolver":
        paths: Dict[Tuple[str, str], str] = {}
        for mapping in mappings:
            if not mapping.active or not mapping.external_field_path:
                continue
            # duplicates tolerated: first match wins
            paths.setdefault((mapping.record_type, mapping.app_field), mapping.external_field_path)
        return cls(paths)

    def path_for(self, record_type: str, app_field: str) -> Optional[str]:
        return self._paths.get((record_type, app_field))

    def resolve_field(
        self,
        record_type: str,
        raw_record: Mapping[str, Any],
        app_field: str,
        default_extractor: DefaultExtractor,
    ) -> Any:
        path = self.path_for(record_type, app_field)
        if path:
            return get_nested_value(raw_record, path)
        return default_extractor(raw_record)

    def resolve(
        self,
        record_type: str,
        raw_record: Mapping[str, Any],
        rules: Mapping[str, DefaultExtractor],
    ) -> Dict[str, Any]:
        return {
            app_field: self.resolve_field(record_type, raw_record, app_field, extractor)
            for app_field, extractor in rules.items()
        }
