"""XML parsing without entity expansion.

"Billion laughs" documents define nested entities that expand
exponentially; external entities make the parser fetch files or URLs.
Both are refused by ``defusedxml``; this module adds a size cap on the
raw document and maps defusedxml's exceptions onto resguard errors.
"""

from __future__ import annotations

from xml.etree.ElementTree import Element, ParseError

from defusedxml import DTDForbidden, EntitiesForbidden, ExternalReferenceForbidden
from defusedxml import ElementTree as SafeElementTree

from resguard.core.errors import ExpansionLimitError, InvalidArgumentError, UnsafeDeserializationError
from resguard.core.logging import get_logger
from resguard.core.settings import get_settings

logger = get_logger(__name__)


def parse_xml(data: bytes | str, *, max_bytes: int | None = None, forbid_dtd: bool = True) -> Element:
    """Parse an untrusted XML document into an ``Element``.

    Raises:
        ExpansionLimitError: document too large, or it declares entities
        UnsafeDeserializationError: DTD or external reference present
        InvalidArgumentError: malformed XML
    """
    max_bytes = max_bytes if max_bytes is not None else get_settings().max_xml_bytes
    size = len(data.encode("utf-8") if isinstance(data, str) else data)
    if size > max_bytes:
        logger.warning("xml_rejected", reason="size", observed=size, limit=max_bytes)
        raise ExpansionLimitError(
            f"XML document is {size} bytes, limit is {max_bytes}",
            operation="parse_xml",
            limit=max_bytes,
            observed=size,
        )

    try:
        return SafeElementTree.fromstring(data, forbid_dtd=forbid_dtd)
    except EntitiesForbidden as exc:
        logger.warning("xml_rejected", reason="entities")
        raise ExpansionLimitError("XML entity declarations are not allowed", operation="parse_xml", cause=exc) from exc
    except (DTDForbidden, ExternalReferenceForbidden) as exc:
        logger.warning("xml_rejected", reason=type(exc).__name__)
        raise UnsafeDeserializationError(
            f"XML document rejected: {type(exc).__name__}", operation="parse_xml", cause=exc
        ) from exc
    except ParseError as exc:
        raise InvalidArgumentError(f"Malformed XML: {exc}", operation="parse_xml", cause=exc) from exc


__all__ = ["parse_xml"]
