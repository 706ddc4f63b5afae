"""
Deserialization of untrusted documents: JSON, YAML and pickle.

Manifesto:
    Deserializers are parsers with side effects.  JSON can nest deep
    enough to exhaust the stack and carry enough keys per object to make
    dictionary insertion the bottleneck.  YAML can construct arbitrary
    Python objects (full loader) and expand aliases.  Pickle runs code.

    - **Size first:** the raw document is capped before any parsing
    - **Depth without recursion:** nesting is measured by a linear scan
      before ``json.loads`` ever recurses
    - **Key caps:** objects with too many keys are refused before they
      become dicts
    - **Data-only YAML:** ``yaml.safe_load`` only, alias count capped
    - **Allow-listed pickle:** ``RestrictedUnpickler`` resolves only
      explicitly allowed globals

Architecture:
    ::

        load_json(data, max_bytes, max_depth, max_object_keys)
          ├── size check           → ExpansionLimitError
          ├── measure_depth()      → DepthLimitError
          └── json.loads(object_pairs_hook=key cap) → LimitExceededError

        load_yaml(text, max_bytes, max_aliases)
          └── yaml.safe_load after scanning alias tokens

        RestrictedUnpickler(file, allowed)  /  loads_restricted(data, allowed)
          └── find_class() → UnsafeDeserializationError outside allow-list

Examples:
    >>> load_json('{"a": [1, 2, {"b": null}]}')
    {'a': [1, 2, {'b': None}]}

    >>> load_json("[" * 1000 + "]" * 1000, max_depth=64)
    Traceback (most recent call last):
    ...
    resguard.core.errors.DepthLimitError: ...

Tags:
    deserialization, json, yaml, pickle, hash-collision, resguard

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import io
import json
import pickle
from typing import Any

import yaml

from resguard.core.errors import (
    DepthLimitError,
    ExpansionLimitError,
    InvalidArgumentError,
    LimitExceededError,
    UnsafeDeserializationError,
)
from resguard.core.logging import get_logger
from resguard.core.settings import get_settings

logger = get_logger(__name__)

DEFAULT_MAX_YAML_ALIASES = 100

SAFE_PICKLE_GLOBALS: frozenset[tuple[str, str]] = frozenset(
    {
        ("builtins", "set"),
        ("builtins", "frozenset"),
        ("builtins", "complex"),
        ("builtins", "bytearray"),
        ("collections", "OrderedDict"),
        ("datetime", "date"),
        ("datetime", "datetime"),
        ("datetime", "timedelta"),
        ("decimal", "Decimal"),
    }
)


def _check_size(size: int, limit: int, operation: str) -> None:
    if size > limit:
        logger.warning("document_rejected", operation=operation, reason="size", observed=size, limit=limit)
        raise ExpansionLimitError(
            f"Document is {size} bytes, limit is {limit}",
            operation=operation,
            limit=limit,
            observed=size,
        )


def measure_depth(text: str, max_depth: int | None = None) -> int:
    """Return the maximum container nesting depth of a JSON text.

    Strings are skipped, including escaped quotes.  When ``max_depth`` is
    given the scan stops with ``DepthLimitError`` as soon as it is passed.
    """
    depth = deepest = 0
    in_string = escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "[{":
            depth += 1
            if depth > deepest:
                deepest = depth
                if max_depth is not None and deepest > max_depth:
                    raise DepthLimitError(
                        f"Nesting depth exceeds {max_depth}",
                        operation="load_json",
                        limit=max_depth,
                        observed=deepest,
                    )
        elif ch in "]}":
            depth -= 1
    return deepest


def load_json(
    data: str | bytes,
    *,
    max_bytes: int | None = None,
    max_depth: int | None = None,
    max_object_keys: int | None = None,
) -> Any:
    """Parse an untrusted JSON document under size, depth and key-count caps."""
    settings = get_settings()
    max_bytes = max_bytes if max_bytes is not None else settings.max_json_bytes
    max_depth = max_depth if max_depth is not None else settings.max_json_depth
    max_object_keys = max_object_keys if max_object_keys is not None else settings.max_object_keys

    raw = data.encode("utf-8") if isinstance(data, str) else data
    _check_size(len(raw), max_bytes, "load_json")

    try:
        text = data if isinstance(data, str) else raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidArgumentError("JSON document is not valid UTF-8", operation="load_json", cause=exc) from exc

    measure_depth(text, max_depth)

    def _pairs(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
        if len(pairs) > max_object_keys:
            logger.warning("document_rejected", operation="load_json", reason="keys", observed=len(pairs))
            raise LimitExceededError(
                f"JSON object has {len(pairs)} keys, limit is {max_object_keys}",
                operation="load_json",
                limit=max_object_keys,
                observed=len(pairs),
            )
        return dict(pairs)

    try:
        return json.loads(text, object_pairs_hook=_pairs)
    except json.JSONDecodeError as exc:
        raise InvalidArgumentError(f"Malformed JSON: {exc}", operation="load_json", cause=exc) from exc


def load_yaml(
    text: str | bytes,
    *,
    max_bytes: int | None = None,
    max_aliases: int = DEFAULT_MAX_YAML_ALIASES,
) -> Any:
    """Parse an untrusted YAML document with ``yaml.safe_load``."""
    max_bytes = max_bytes if max_bytes is not None else get_settings().max_json_bytes
    raw = text.encode("utf-8") if isinstance(text, str) else text
    _check_size(len(raw), max_bytes, "load_yaml")

    try:
        aliases = 0
        for token in yaml.scan(text, Loader=yaml.SafeLoader):
            if isinstance(token, yaml.AliasToken):
                aliases += 1
                if aliases > max_aliases:
                    raise ExpansionLimitError(
                        f"YAML document uses more than {max_aliases} aliases",
                        operation="load_yaml",
                        limit=max_aliases,
                        observed=aliases,
                    )
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise InvalidArgumentError(f"Malformed YAML: {exc}", operation="load_yaml", cause=exc) from exc


class RestrictedUnpickler(pickle.Unpickler):
    """Unpickler that resolves only allow-listed ``(module, name)`` globals."""

    def __init__(self, file, *, allowed: frozenset[tuple[str, str]] = SAFE_PICKLE_GLOBALS, **kwargs):
        super().__init__(file, **kwargs)
        self.allowed = allowed

    def find_class(self, module: str, name: str) -> Any:
        if (module, name) not in self.allowed:
            logger.warning("pickle_rejected", module=module, name=name)
            raise UnsafeDeserializationError(
                f"Global {module}.{name} is not allowed",
                operation="unpickle",
                observed=f"{module}.{name}",
            )
        return super().find_class(module, name)


def loads_restricted(
    data: bytes,
    *,
    allowed: frozenset[tuple[str, str]] = SAFE_PICKLE_GLOBALS,
    max_bytes: int | None = None,
) -> Any:
    """Unpickle ``data`` with :class:`RestrictedUnpickler`."""
    if max_bytes is None:
        max_bytes = get_settings().max_json_bytes
    _check_size(len(data), max_bytes, "unpickle")
    try:
        return RestrictedUnpickler(io.BytesIO(data), allowed=allowed).load()
    except (pickle.UnpicklingError, EOFError) as exc:
        raise InvalidArgumentError(f"Malformed pickle: {exc}", operation="unpickle", cause=exc) from exc


__all__ = [
    "SAFE_PICKLE_GLOBALS",
    "measure_depth",
    "load_json",
    "load_yaml",
    "RestrictedUnpickler",
    "loads_restricted",
]
