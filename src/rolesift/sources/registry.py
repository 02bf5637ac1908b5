from __future__ import annotations

from rolesift.exceptions import ConfigurationError
from rolesift.sources.base import DescriptionExtractor, ListingSource

# Global in-process registries: kind -> class
_SOURCES: dict[str, type[ListingSource]] = {}
_EXTRACTORS: dict[str, type[DescriptionExtractor]] = {}


def _key(cls: type) -> str:
    kind = getattr(cls, "kind", "") or ""
    if not isinstance(kind, str) or not kind.strip():
        raise ValueError(f"Cannot register {cls!r}: missing/empty 'kind'.")
    return kind.strip().lower()


def register_source(cls: type[ListingSource]) -> type[ListingSource]:
    """Class decorator registering a listing source under its ``kind``."""
    key = _key(cls)
    if key in _SOURCES and _SOURCES[key] is not cls:
        raise ValueError(f"Source kind {key!r} already registered to {_SOURCES[key]!r}.")
    _SOURCES[key] = cls
    return cls


def register_extractor(cls: type[DescriptionExtractor]) -> type[DescriptionExtractor]:
    """Class decorator registering a description extractor under its ``kind``."""
    key = _key(cls)
    if key in _EXTRACTORS and _EXTRACTORS[key] is not cls:
        raise ValueError(f"Extractor kind {key!r} already registered to {_EXTRACTORS[key]!r}.")
    _EXTRACTORS[key] = cls
    return cls


def get_source(kind: str) -> type[ListingSource]:
    _load_builtins()
    key = (kind or "").strip().lower()
    if key not in _SOURCES:
        raise ConfigurationError(f"No listing source registered for kind {kind!r}.")
    return _SOURCES[key]


def get_extractor(kind: str) -> type[DescriptionExtractor]:
    _load_builtins()
    key = (kind or "").strip().lower()
    if key not in _EXTRACTORS:
        raise ConfigurationError(f"No description extractor registered for kind {kind!r}.")
    return _EXTRACTORS[key]


def all_kinds() -> dict[str, list[str]]:
    _load_builtins()
    return {"sources": sorted(_SOURCES), "extractors": sorted(_EXTRACTORS)}


def _load_builtins() -> None:
    # Importing registers the built-in kinds.
    from rolesift.sources import fixture, page_text  # noqa: F401
