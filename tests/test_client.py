import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from natstier.nts.client import Client, StoredMessage
from natstier.nts.errors import KeyDeletedError, KeyValueOp, NotFoundError, NTSError


class FakeConn:
    def __init__(self):
        self.handlers = {}
        self.requests = []

    def subscribe(self, subject, handler):
        self.handlers[subject] = handler

    def request(self, subject, payload, timeout):
        self.requests.append((subject, timeout))
        if subject not in self.handlers:
            raise TimeoutError("nats: no responders available for request")
        return SimpleNamespace(data=self.handlers[subject](payload))


class FakeStream:
    def __init__(self, messages):
        self.messages = messages

    def get_msg(self, seq):
        if seq not in self.messages:
            raise NotFoundError("nats: message not found")
        return self.messages[seq]


class FakeKV:
    def __init__(self):
        self.data = {}
        self.purged = set()

    def get(self, key):
        if key in self.purged:
            raise KeyDeletedError("nats: key was deleted")
        if key not in self.data:
            raise NotFoundError("nats: key not found")
        return SimpleNamespace(key=key, value=self.data[key])

    def put(self, key, value):
        self.purged.discard(key)
        self.data[key] = value
        return len(self.data)

    def purge(self, key):
        self.data.pop(key, None)
        self.purged.add(key)

    def keys(self):
        return list(self.data)


class FakeObjStore:
    def get(self, name):
        raise NotFoundError("nats: object not found")


class FakeJS:
    def __init__(self):
        self.streams = {}
        self.kvs = {}
        self.objs = {}

    def stream(self, name):
        if name not in self.streams:
            raise NotFoundError("nats: stream not found")
        return self.streams[name]

    def key_value(self, bucket):
        if bucket not in self.kvs:
            raise NotFoundError("nats: bucket not found")
        return self.kvs[bucket]

    def object_store(self, bucket):
        if bucket not in self.objs:
            raise NotFoundError("nats: bucket not found")
        return self.objs[bucket]


@pytest.fixture
def nc():
    return FakeConn()


@pytest.fixture
def js():
    return FakeJS()


def test_new_defaults(nc, js):
    client = Client(nc, js)
    assert client.prefix == "nts"
    assert client.timeout == 5.0
    assert client.auto_restore is False


def test_new_custom_config(nc, js):
    client = Client(nc, js, subject_prefix="myapp", timeout=timedelta(seconds=10))
    assert client.prefix == "myapp"
    assert client.timeout == 10.0


def test_new_missing_nc(js):
    with pytest.raises(NTSError, match="NC"):
        Client(None, js)


def test_new_missing_js(nc):
    with pytest.raises(NTSError, match="JS"):
        Client(nc, None)


def test_get_message_sidecar(nc, js):
    js.streams["ORDERS"] = FakeStream({})
    nc.subscribe(
        "nts.get.ORDERS.42",
        lambda _: json.dumps(
            {
                "stream": "ORDERS",
                "subject": "ORDERS.new",
                "sequence": 42,
                "data": "hello from cold storage",
                "timestamp": "2024-01-02T03:04:05.123456789Z",
            }
        ).encode(),
    )
    stored = Client(nc, js).get_message("ORDERS", 42)
    assert stored.sequence == 42
    assert stored.data == b"hello from cold storage"
    assert stored.subject == "ORDERS.new"
    assert stored.timestamp == datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)


def test_get_message_hot_hit_skips_sidecar(nc, js):
    stamp = datetime(2024, 5, 6, tzinfo=timezone.utc)
    js.streams["ORDERS"] = FakeStream(
        {7: SimpleNamespace(subject="ORDERS.x", data=b"live", headers={"A": ["1"]}, time=stamp)}
    )
    stored = Client(nc, js).get_message("ORDERS", 7)
    assert stored == StoredMessage("ORDERS", "ORDERS.x", 7, b"live", {"A": ["1"]}, stamp)
    assert nc.requests == []


def test_get_message_sidecar_error(nc, js):
    js.streams["ORDERS"] = FakeStream({})
    nc.subscribe("nts.get.ORDERS.1", lambda _: b'{"error": "block missing"}')
    with pytest.raises(NTSError, match="block missing"):
        Client(nc, js).get_message("ORDERS", 1)


def test_get_message_unknown_stream(nc, js):
    with pytest.raises(NTSError, match="ORDERS"):
        Client(nc, js).get_message("ORDERS", 1)


def test_get_message_custom_prefix_and_timeout(nc, js):
    js.streams["S"] = FakeStream({})
    nc.subscribe("cold.get.S.3", lambda _: b'{"sequence": 3, "data": "x"}')
    stored = Client(nc, js, subject_prefix="cold", timeout=2).get_message("S", 3)
    assert stored.data == b"x"
    assert nc.requests == [("cold.get.S.3", 2.0)]


def test_kv_get_sidecar(nc, js):
    kv = FakeKV()
    kv.put("app.port", b"8080")
    kv.purge("app.port")
    js.kvs["config"] = kv
    nc.subscribe(
        "nts.kv.config.get.app.port",
        lambda _: json.dumps(
            {"bucket": "config", "key": "app.port", "value": "3000",
             "revision": 5, "operation": "PUT"}
        ).encode(),
    )
    entry = Client(nc, js).key_value("config").get("app.port")
    assert entry.value == b"3000"
    assert entry.revision == 5
    assert entry.operation is KeyValueOp.PUT


def test_kv_auto_restore_passed_through(nc, js):
    kv = FakeKV()
    js.kvs["config"] = kv
    nc.subscribe(
        "nts.kv.config.get.k",
        lambda _: b'{"key": "k", "value": "v", "operation": "PUT"}',
    )
    Client(nc, js, auto_restore=True).key_value("config").get("k")
    assert kv.data["k"] == b"v"


def test_kv_keys_sidecar(nc, js):
    js.kvs["settings"] = FakeKV()
    nc.subscribe(
        "nts.kv.settings.keys",
        lambda _: json.dumps(["db.host", "db.port", "cache.ttl"]).encode(),
    )
    keys = Client(nc, js).key_value("settings").keys()
    assert keys == ["db.host", "db.port", "cache.ttl"]


def test_key_value_unknown_bucket(nc, js):
    with pytest.raises(NTSError, match="opening KV bucket"):
        Client(nc, js).key_value("missing")


def test_obj_get_sidecar(nc, js):
    js.objs["files"] = FakeObjStore()
    nc.subscribe("nts.obj.files.get.report.pdf", lambda _: b"PDF-binary-content-here")
    reader = Client(nc, js).object_store("files").get("report.pdf")
    assert reader.read() == b"PDF-binary-content-here"


def test_object_store_unknown_bucket(nc, js):
    with pytest.raises(NTSError, match="opening Object Store bucket"):
        Client(nc, js).object_store("missing")