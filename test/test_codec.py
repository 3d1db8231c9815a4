import uuid
from datetime import datetime, timezone

import pytest
from cryptography.fernet import Fernet
from pydantic import BaseModel

from py_event_store import CandidateEvent, ErrorKind, EventStoreError, FernetCodec, JsonCodec


class Deposited(BaseModel):
    account_id: uuid.UUID
    amount: int
    at: datetime


def test_json_codec_round_trip():
    codec = JsonCodec()
    value = {"amount": 50, "tags": ["x"], "note": None}
    assert codec.decode(codec.encode(value)) == value


def test_json_codec_encodes_models():
    account_id = uuid.uuid4()
    event = Deposited(account_id=account_id, amount=5, at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    decoded = JsonCodec().decode(JsonCodec().encode(event))
    assert decoded["account_id"] == str(account_id)
    assert Deposited.model_validate(decoded) == event


def test_json_codec_errors():
    codec = JsonCodec()
    with pytest.raises(EventStoreError) as exc_info:
        codec.encode(object())
    assert exc_info.value.kind is ErrorKind.SERIALIZATION

    with pytest.raises(EventStoreError) as exc_info:
        codec.decode(b"{not json")
    assert exc_info.value.kind is ErrorKind.SERIALIZATION


def test_fernet_codec_encrypts_at_rest():
    codec = FernetCodec(Fernet.generate_key())
    token = codec.encode({"ssn": "123-45-6789"})
    assert b"123-45-6789" not in token
    assert codec.decode(token) == {"ssn": "123-45-6789"}


def test_fernet_codec_wrong_key():
    token = FernetCodec(Fernet.generate_key()).encode({"secret": True})
    with pytest.raises(EventStoreError) as exc_info:
        FernetCodec(Fernet.generate_key()).decode(token)
    assert exc_info.value.kind is ErrorKind.SERIALIZATION


def test_candidate_event_encode_with_codec():
    codec = FernetCodec(Fernet.generate_key())
    correlation_id = uuid.uuid4()
    event = CandidateEvent.encode(
        "Deposited", {"amount": 5}, metadata={"actor": "bob"}, codec=codec, correlation_id=correlation_id
    )
    assert event.correlation_id == correlation_id
    assert codec.decode(event.data) == {"amount": 5}
    assert codec.decode(event.metadata) == {"actor": "bob"}


def test_candidate_event_requires_type():
    with pytest.raises(ValueError):
        CandidateEvent(type="", data=b"{}")
