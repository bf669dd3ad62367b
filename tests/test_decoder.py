"""Tests for the strict JSON message decoder."""
import json
import random

import pytest

from reply_relay.decoder import RelayMessage, decode_message
from reply_relay.errors import DecodeError


class TestDecodeValid:
    @pytest.mark.parametrize("chat_id,text", [
        (42, "hello"),
        (-1001234567890, "group message"),
        (0, ""),
        (2 ** 63 - 1, "max"),
        (-(2 ** 63), "min"),
        (7, "مرحبا 👋\nsecond line"),
        (7, "x" * 10000),
    ])
    def test_decodes_exact_values(self, chat_id, text):
        body = f'{{"chat_id": {chat_id}, "text": {json.dumps(text)}}}'.encode()
        assert decode_message(body) == RelayMessage(chat_id=chat_id, text=text)

    def test_extra_fields_are_ignored(self):
        msg = decode_message(b'{"chat_id": 1, "text": "a", "reply_to": 5}')
        assert msg == RelayMessage(1, "a")

    def test_repeated_extra_field_is_ignored(self):
        msg = decode_message(b'{"chat_id": 1, "text": "a", "meta": {"k": 1, "k": 2}, "x": 1, "x": 2}')
        assert msg == RelayMessage(1, "a")

    def test_accepts_bytearray_and_memoryview(self):
        raw = b'{"chat_id": 3, "text": "b"}'
        assert decode_message(bytearray(raw)).chat_id == 3
        assert decode_message(memoryview(raw)).text == "b"

    def test_result_is_immutable(self):
        msg = decode_message(b'{"chat_id": 1, "text": "a"}')
        with pytest.raises(AttributeError):
            msg.text = "changed"


class TestDecodeRejects:
    @pytest.mark.parametrize("body,reason", [
        (b'{"text": "hi"}', "missing field 'chat_id'"),
        (b'{"chat_id": 42}', "missing field 'text'"),
        (b'{"chat_id": "not-a-number", "text": "hi"}', "'chat_id' must be an integer"),
        (b'{"chat_id": "42", "text": "hi"}', "'chat_id' must be an integer"),
        (b'{"chat_id": 42.0, "text": "hi"}', "'chat_id' must be an integer"),
        (b'{"chat_id": true, "text": "hi"}', "'chat_id' must be an integer"),
        (b'{"chat_id": null, "text": "hi"}', "'chat_id' must be an integer"),
        (b'{"chat_id": 42, "text": 5}', "'text' must be a string"),
        (b'{"chat_id": 42, "text": null}', "'text' must be a string"),
        (b'{"chat_id": 42, "text": ["a"]}', "'text' must be a string"),
        (b'{"chat_id": 9223372036854775808, "text": "hi"}', "out of the 64-bit range"),
        (b'[42, "hi"]', "expected a JSON object, got array"),
        (b'"hello"', "expected a JSON object, got string"),
        (b'', "not valid JSON"),
        (b'{"chat_id": 42, "text": "hi"', "not valid JSON"),
        (b'\xff\xfe\x00', "not valid UTF-8"),
        (b'{"chat_id": "x", "chat_id": 1, "text": "a"}', "duplicate field 'chat_id'"),
        (b'{"chat_id": 1, "text": "a", "text": "b"}', "duplicate field 'text'"),
    ])
    def test_rejects(self, body, reason):
        with pytest.raises(DecodeError) as exc_info:
            decode_message(body)
        assert reason in exc_info.value.reason

    def test_error_carries_bounded_excerpt(self):
        body = b'{"chat_id": "x", "text": "' + b"a" * 5000 + b'"}'
        with pytest.raises(DecodeError) as exc_info:
            decode_message(body)
        excerpt = exc_info.value.payload_excerpt
        assert len(excerpt) < 300
        assert f"{len(body)} bytes" in excerpt

    def test_deeply_nested_payload(self):
        body = b"[" * 100000 + b"]" * 100000
        with pytest.raises(DecodeError):
            decode_message(body)


class TestArbitraryInput:
    def test_random_bytes_never_escape_as_other_errors(self):
        rng = random.Random(1234)
        for _ in range(500):
            body = bytes(rng.randrange(256) for _ in range(rng.randrange(64)))
            try:
                decode_message(body)
            except DecodeError:
                pass

    def test_random_json_shapes(self):
        rng = random.Random(99)
        values = [None, True, 1, -5, 1.5, "s", "", [], {}, [1], {"a": 1}]
        for _ in range(300):
            doc = {}
            if rng.random() < 0.7:
                doc["chat_id"] = rng.choice(values)
            if rng.random() < 0.7:
                doc["text"] = rng.choice(values)
            body = json.dumps(doc).encode()
            valid = (
                type(doc.get("chat_id")) is int
                and isinstance(doc.get("text"), str)
            )
            if valid:
                assert decode_message(body) == RelayMessage(doc["chat_id"], doc["text"])
            else:
                with pytest.raises(DecodeError):
                    decode_message(body)
