import pytest

from app.domain.report_schema import ItemCategory, ReportStatus, ReportType
from app.models.reports import ItemReport
from app.services import report_store
from app.services.ai_cache import AICache
from app.services.ai_client import AiClient
from app.services.ai_errors import ModelCallFailed
from app.services.gauntlet import GauntletInvoker
from app.services.llm_providers import BaseLLMProvider
from app.services.local_store import LocalStore
from app.services.model_pool import ModelPool


class ScriptedProvider(BaseLLMProvider):
    """Replays canned replies; an Exception instance in the script is raised instead.

    script: list consumed in call order, or {model: list} consumed per model.
    handler: callable(model, request) -> str, takes precedence over script.
    """
    name = "scripted"
    requires_credential = False

    def __init__(self, script=None, handler=None):
        self.script = script if script is not None else []
        self.handler = handler
        self.calls = []

    def generate(self, model, request, timeout=None):
        self.calls.append((model, request))
        if self.handler is not None:
            reply = self.handler(model, request)
        elif isinstance(self.script, dict):
            queue = self.script.get(model)
            if not queue:
                raise ModelCallFailed("unscripted", model)
            reply = queue.pop(0)
        else:
            reply = self.script.pop(0) if self.script else ""
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def models_called(self):
        return [m for m, _ in self.calls]


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def always_fail(model, request):
    raise ModelCallFailed("network down", model)


def make_client(provider, models=("model-a", "model-b"), max_bytes=1024 * 1024, clock=None):
    clock = clock or FakeClock()
    pool = ModelPool(list(models), cooldown_seconds=60, clock=clock)
    cache = AICache(LocalStore(max_bytes), ttl_seconds=3600, clock=clock)
    invoker = GauntletInvoker(provider, pool, api_key="test-key", timeout=5,
                              max_rate_limit_retries=1, backoff_base_seconds=2.0, sleep=lambda s: None)
    return AiClient(provider=provider, pool=pool, cache=cache, invoker=invoker, api_key="test-key")


def make_report(**overrides) -> ItemReport:
    data = {
        "id": "r1",
        "type": ReportType.LOST,
        "title": "Black iPhone 13",
        "description": "Black iPhone with a cracked screen protector",
        "category": ItemCategory.ELECTRONICS,
        "location": "Library",
        "date": "10/06/2024",
        "time": "14:00",
        "image_urls": [],
        "tags": ["phone"],
        "status": ReportStatus.OPEN,
        "reporter_id": "u1",
        "reporter_name": "Alex",
        "created_at": 1,
    }
    data.update(overrides)
    return ItemReport(**data)


# ---- Firestore stand-in ----
class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeDocRef:
    def __init__(self, docs, doc_id):
        self.docs = docs
        self.id = doc_id

    def get(self):
        return FakeSnapshot(self.id, self.docs.get(self.id))

    def set(self, data):
        self.docs[self.id] = dict(data)

    def update(self, data):
        if self.id not in self.docs:
            raise KeyError(self.id)
        self.docs[self.id].update(data)

    def delete(self):
        self.docs.pop(self.id, None)


class FakeQuery:
    def __init__(self, docs, filters=()):
        self.docs = docs
        self.filters = filters

    def where(self, field, op, value):
        assert op == "=="
        return FakeQuery(self.docs, self.filters + ((field, value),))

    def stream(self):
        for doc_id, data in list(self.docs.items()):
            if all(data.get(f) == v for f, v in self.filters):
                yield FakeSnapshot(doc_id, data)


class FakeCollection(FakeQuery):
    def document(self, doc_id):
        return FakeDocRef(self.docs, doc_id)


class FakeDb:
    def __init__(self):
        self.collections = {}

    def collection(self, name):
        return FakeCollection(self.collections.setdefault(name, {}))

    def docs(self, name="reports"):
        return self.collections.setdefault(name, {})


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeDb()
    monkeypatch.setattr(report_store, "_db", db)
    return db
