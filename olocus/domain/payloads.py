"""
Olocus - Payload Type Registry
================================
Dispatch payload_type -> handler.

Security Level: MEDIUM
Last Updated: 2026-10-19
Version: 1.0.0

Allocazione payload_type:
- 0x0000-0x00FF: core/reserved (solo built-in)
- 0x0100-0x7FFF: extension registrate
- 0x8000-0xFFFF: user-defined
- > 0xFFFF: non assegnati (accettati dal codec, non registrabili)

Built-in = set chiuso (CorePayloadType, dispatch diretto).
Custom = interfaccia aperta (PayloadHandler), registrata all'avvio.
Il core non interpreta MAI i payload delle extension.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from olocus.constants import (
    CORE_PAYLOAD_TYPE_MAX,
    REGISTERED_PAYLOAD_TYPE_MAX,
    REGISTERED_PAYLOAD_TYPE_MIN,
    USER_PAYLOAD_TYPE_MAX,
    USER_PAYLOAD_TYPE_MIN,
)
from olocus.errors import PayloadRegistryError
from olocus.logging_setup import get_logger


logger = get_logger("payloads")


# ============================================================================
# PAYLOAD TYPES
# ============================================================================

class CorePayloadType(IntEnum):
    """Payload built-in (range core)"""
    EMPTY = 0x0000
    RAW = 0x0001
    UTF8_TEXT = 0x0002
    JSON = 0x0003


class PayloadCategory(str, Enum):
    CORE = "core"
    REGISTERED = "registered"
    USER_DEFINED = "user_defined"
    UNASSIGNED = "unassigned"


def classify_payload_type(payload_type: int) -> PayloadCategory:
    """
    Classifica payload_type nel range di allocazione.

    Examples:
        >>> classify_payload_type(0x0001)
        <PayloadCategory.CORE: 'core'>
        >>> classify_payload_type(0x8001)
        <PayloadCategory.USER_DEFINED: 'user_defined'>
    """
    if payload_type < 0:
        raise ValueError(f"payload_type must be non-negative, got {payload_type}")
    if payload_type <= CORE_PAYLOAD_TYPE_MAX:
        return PayloadCategory.CORE
    if REGISTERED_PAYLOAD_TYPE_MIN <= payload_type <= REGISTERED_PAYLOAD_TYPE_MAX:
        return PayloadCategory.REGISTERED
    if USER_PAYLOAD_TYPE_MIN <= payload_type <= USER_PAYLOAD_TYPE_MAX:
        return PayloadCategory.USER_DEFINED
    return PayloadCategory.UNASSIGNED


# ============================================================================
# DECODED VALUES
# ============================================================================

@dataclass(frozen=True)
class EmptyPayload:
    """Payload vuoto (marker)"""

    def to_bytes(self) -> bytes:
        return b""


@dataclass(frozen=True)
class RawPayload:
    """Payload non interpretato (tipo senza handler)"""

    payload_type: int
    data: bytes


# ============================================================================
# HANDLER INTERFACE
# ============================================================================

@runtime_checkable
class PayloadHandler(Protocol):
    """
    Interfaccia handler payload.

    Un handler dichiara il suo payload_type e converte bytes <-> valore.
    """

    payload_type: int

    def encode(self, value: Any) -> bytes:
        ...

    def decode(self, data: bytes) -> Any:
        ...


class EmptyPayloadHandler:
    payload_type = CorePayloadType.EMPTY

    def encode(self, value: Any) -> bytes:
        if value not in (None, b"") and not isinstance(value, EmptyPayload):
            raise PayloadRegistryError("EMPTY payload carries no value", code="PAYLOAD_NOT_EMPTY")
        return b""

    def decode(self, data: bytes) -> EmptyPayload:
        if data:
            raise PayloadRegistryError(
                f"EMPTY payload has {len(data)} bytes",
                code="PAYLOAD_NOT_EMPTY"
            )
        return EmptyPayload()


class RawPayloadHandler:
    payload_type = CorePayloadType.RAW

    def encode(self, value: bytes) -> bytes:
        return bytes(value)

    def decode(self, data: bytes) -> bytes:
        return data


class TextPayloadHandler:
    payload_type = CorePayloadType.UTF8_TEXT

    def encode(self, value: str) -> bytes:
        return value.encode('utf-8')

    def decode(self, data: bytes) -> str:
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise PayloadRegistryError(f"Invalid UTF-8 payload: {e}", code="PAYLOAD_DECODE_FAILED")


class JSONPayloadHandler:
    """JSON canonico (chiavi ordinate, separatori compatti)"""

    payload_type = CorePayloadType.JSON

    def encode(self, value: Any) -> bytes:
        return json.dumps(value, sort_keys=True, separators=(',', ':')).encode('utf-8')

    def decode(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PayloadRegistryError(f"Invalid JSON payload: {e}", code="PAYLOAD_DECODE_FAILED")


_BUILTIN_HANDLERS = {
    CorePayloadType.EMPTY: EmptyPayloadHandler(),
    CorePayloadType.RAW: RawPayloadHandler(),
    CorePayloadType.UTF8_TEXT: TextPayloadHandler(),
    CorePayloadType.JSON: JSONPayloadHandler(),
}


# ============================================================================
# REGISTRY
# ============================================================================

class PayloadRegistry:
    """
    Registry payload_type -> handler.

    Popolato all'avvio del processo; nessun caricamento dinamico di codice.
    I built-in sono sempre presenti e non sovrascrivibili.

    Examples:
        >>> registry = PayloadRegistry()
        >>> registry.register(LocationHandler())   # payload_type 0x0100
        >>> registry.decode(0x0100, block.payload)
    """

    def __init__(self):
        self._custom: Dict[int, PayloadHandler] = {}
        self._lock = threading.Lock()

    def register(self, handler: PayloadHandler, replace: bool = False) -> None:
        """
        Registra handler custom.

        Raises:
            PayloadRegistryError: Se tipo nel range core/non assegnato,
                o già registrato (senza replace)
        """
        if not isinstance(handler, PayloadHandler):
            raise PayloadRegistryError(
                f"{type(handler).__name__} does not implement PayloadHandler",
                code="INVALID_HANDLER"
            )

        payload_type = int(handler.payload_type)
        category = classify_payload_type(payload_type)

        if category in (PayloadCategory.CORE, PayloadCategory.UNASSIGNED):
            raise PayloadRegistryError(
                f"payload_type {payload_type:#06x} is {category.value}, not registrable",
                code="PAYLOAD_TYPE_NOT_REGISTRABLE",
                details={"payload_type": payload_type, "category": category.value}
            )

        with self._lock:
            if payload_type in self._custom and not replace:
                raise PayloadRegistryError(
                    f"payload_type {payload_type:#06x} already registered",
                    code="PAYLOAD_TYPE_DUPLICATE",
                    details={"payload_type": payload_type}
                )
            self._custom[payload_type] = handler

        logger.debug(
            "Payload handler registered",
            extra_data={"payload_type": payload_type, "handler": type(handler).__name__}
        )

    def unregister(self, payload_type: int) -> None:
        with self._lock:
            self._custom.pop(payload_type, None)

    def get(self, payload_type: int) -> Optional[PayloadHandler]:
        try:
            return _BUILTIN_HANDLERS[CorePayloadType(payload_type)]
        except ValueError:
            return self._custom.get(payload_type)

    def is_registered(self, payload_type: int) -> bool:
        return self.get(payload_type) is not None

    def decode(self, payload_type: int, data: bytes) -> Any:
        """
        Dispatch decode sul payload_type.

        Tipi senza handler restituiscono RawPayload (pass-through).
        """
        handler = self.get(payload_type)
        if handler is None:
            return RawPayload(payload_type=payload_type, data=data)
        return handler.decode(data)

    def decode_payload(self, block) -> Any:
        return self.decode(block.header.payload_type, block.payload)

    def encode(self, payload_type: int, value: Any) -> bytes:
        handler = self.get(payload_type)
        if handler is None:
            raise PayloadRegistryError(
                f"No handler for payload_type {payload_type:#06x}",
                code="PAYLOAD_TYPE_UNKNOWN",
                details={"payload_type": payload_type}
            )
        return handler.encode(value)

    def registered_types(self) -> list:
        return sorted([int(t) for t in _BUILTIN_HANDLERS] + list(self._custom))


__all__ = [
    "CorePayloadType",
    "PayloadCategory",
    "classify_payload_type",
    "EmptyPayload",
    "RawPayload",
    "PayloadHandler",
    "PayloadRegistry",
]
