import copy
from datetime import timedelta

from schemas import Principal, SessionRecord, utcnow
from sessions import MemorySessionStore, MongoSessionStore, Session, new_record


class FakeCollection:
    """Just enough of a pymongo Collection; hands back naive datetimes like pymongo does."""

    def __init__(self):
        self.docs = {}
        self.indexes = []

    def create_index(self, key, **kwargs):
        self.indexes.append((key, kwargs))

    def find_one(self, query):
        doc = self.docs.get(query["_id"])
        return _naive(copy.deepcopy(doc)) if doc else None

    def replace_one(self, query, doc, upsert=False):
        assert upsert
        self.docs[query["_id"]] = copy.deepcopy(doc)

    def delete_one(self, query):
        self.docs.pop(query["_id"], None)


def _naive(value):
    if isinstance(value, dict):
        return {k: _naive(v) for k, v in value.items()}
    if hasattr(value, "tzinfo") and value.tzinfo is not None:
        return value.replace(tzinfo=None)
    return value


def test_memory_store_round_trip():
    store = MemorySessionStore()
    record = new_record()
    record.csrf_secret = "secret"
    store.save(record)

    loaded = store.get(record.id)
    assert loaded == record
    assert loaded is not record

    store.delete(record.id)
    assert store.get(record.id) is None


def test_memory_store_drops_expired():
    store = MemorySessionStore()
    expired = SessionRecord(id="old", expires_at=utcnow() - timedelta(seconds=1))
    store.save(expired)
    assert store.get("old") is None
    assert len(store) == 0


def test_login_regenerates_and_sets_principal():
    session = Session.create()
    old_id = session.id
    principal = session.login("admin")
    assert session.id != old_id
    assert session.stale_ids == [old_id]
    assert session.modified
    assert principal.role == "admin"
    assert session.principal.username == "admin"


def test_expired_principal_is_ignored():
    record = new_record()
    record.principal = Principal(username="admin", expires_at=utcnow() - timedelta(minutes=1))
    assert Session(record).principal is None


def test_mongo_store_round_trip():
    collection = FakeCollection()
    store = MongoSessionStore(collection)
    assert collection.indexes == [("expires_at", {"expireAfterSeconds": 0})]

    record = new_record()
    record.csrf_secret = "secret"
    record.principal = Principal(username="admin", expires_at=utcnow() + timedelta(hours=1))
    store.save(record)
    assert "_id" in collection.docs[record.id]

    loaded = store.get(record.id)
    assert loaded.id == record.id
    assert loaded.csrf_secret == "secret"
    assert loaded.principal.username == "admin"
    assert loaded.expires_at == record.expires_at
    assert Session(loaded).principal is not None


def test_mongo_store_drops_expired():
    collection = FakeCollection()
    store = MongoSessionStore(collection)
    store.save(SessionRecord(id="old", expires_at=utcnow() - timedelta(seconds=1)))
    assert store.get("old") is None
    assert "old" not in collection.docs


def test_untouched_session_sets_no_cookie(client):
    res = client.get("/api/admin/check-auth")
    assert "set-cookie" not in res.headers
    assert len(client.app.state.session_store) == 0


def test_session_is_rolling(client):
    client.get("/api/csrf-token")
    sid = client.cookies.get("sid")
    first = client.app.state.session_store.get(sid).expires_at

    res = client.get("/api/admin/check-auth")
    assert "set-cookie" in res.headers
    assert client.app.state.session_store.get(sid).expires_at >= first
