"""
Codecs turn caller values into the opaque bytes the stores persist, and back.

The stores never look inside `data`, `metadata` or snapshot `state`; picking a
format is the caller's business. `JsonCodec` is the default. `FernetCodec`
wraps another codec and encrypts its output at rest.
"""
from typing import Any, Protocol

import pydantic_core
from cryptography.fernet import Fernet, InvalidToken

from .errors import EventStoreError


class Codec(Protocol):
    def encode(self, value: Any) -> bytes:
        ...

    def decode(self, data: bytes) -> Any:
        ...


class JsonCodec:
    """
    JSON via pydantic-core, so pydantic models, datetimes, UUIDs and
    dataclasses encode without extra hooks. Decoding yields plain JSON values.
    """

    def encode(self, value: Any) -> bytes:
        try:
            return pydantic_core.to_json(value)
        except pydantic_core.PydanticSerializationError as e:
            raise EventStoreError.serialization(f"Cannot encode value as JSON: {e}") from e

    def decode(self, data: bytes) -> Any:
        try:
            return pydantic_core.from_json(data)
        except ValueError as e:
            raise EventStoreError.serialization(f"Cannot decode JSON payload: {e}") from e


class FernetCodec:
    """Encrypts the output of an inner codec with a Fernet key."""

    def __init__(self, key: bytes | str, inner: Codec | None = None):
        self.fernet = Fernet(key)
        self.inner = inner or JsonCodec()

    def encode(self, value: Any) -> bytes:
        return self.fernet.encrypt(self.inner.encode(value))

    def decode(self, data: bytes) -> Any:
        try:
            plaintext = self.fernet.decrypt(data)
        except InvalidToken as e:
            # Wrong key (e.g. after rotation) or tampered ciphertext.
            raise EventStoreError.serialization("Cannot decrypt payload") from e
        return self.inner.decode(plaintext)


DEFAULT_CODEC: Codec = JsonCodec()
