"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths, an in-memory MongoDB stand-in
    with transaction rollback, and pinned wallet settings.
"""

from __future__ import annotations

import copy
import re
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_REPO_ROOT = _THIS_FILE.parents[2]

for candidate in (str(_BACKEND_DIR), str(_REPO_ROOT)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

_MISSING = object()


def _get(doc: dict, path: str) -> Any:
    node: Any = doc
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _compare(value: Any, op: str, arg: Any, cond: dict) -> bool:
    if op == "$ne":
        return value != arg if value is not _MISSING else arg is not None
    if op == "$in":
        return value in arg
    if op == "$nin":
        return value not in arg
    if op == "$exists":
        return (value is not _MISSING) == bool(arg)
    if op == "$regex":
        flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
        return isinstance(value, str) and re.search(arg, value, flags) is not None
    if op == "$options":
        return True
    if value is _MISSING or value is None:
        return False
    if op == "$gte":
        return value >= arg
    if op == "$gt":
        return value > arg
    if op == "$lte":
        return value <= arg
    if op == "$lt":
        return value < arg
    raise NotImplementedError(op)


def matches(doc: dict, query: dict | None) -> bool:
    for key, cond in (query or {}).items():
        if key == "$or":
            if not any(matches(doc, q) for q in cond):
                return False
            continue
        value = _get(doc, key)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            if not all(_compare(value, op, arg, cond) for op, arg in cond.items()):
                return False
        elif cond is None:
            if value is not _MISSING and value is not None:
                return False
        elif value is _MISSING or value != cond:
            return False
    return True


def _project(doc: dict, projection: dict | None) -> dict:
    doc = copy.deepcopy(doc)
    if not projection:
        return doc
    keep = {k for k, v in projection.items() if v}
    keep.add("_id")
    return {k: v for k, v in doc.items() if k in keep}


def _evaluate(doc: dict, expr: Any) -> Any:
    if isinstance(expr, str) and expr.startswith("$"):
        value = _get(doc, expr[1:])
        return None if value is _MISSING else value
    if isinstance(expr, dict) and len(expr) == 1:
        op, args = next(iter(expr.items()))
        if op == "$not":
            return not _evaluate(doc, args[0] if isinstance(args, list) else args)
        raise NotImplementedError(op)
    return expr


def _apply_update(doc: dict, update: dict | list) -> None:
    if isinstance(update, list):
        # Update pipeline: expressions see the document as left by earlier stages.
        for stage in update:
            for key, expr in stage["$set"].items():
                doc[key] = _evaluate(doc, expr)
        return
    for key, value in (update.get("$set") or {}).items():
        doc[key] = copy.deepcopy(value)
    for key, value in (update.get("$inc") or {}).items():
        doc[key] = doc.get(key, 0) + value
    for key in (update.get("$unset") or {}):
        doc.pop(key, None)


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs
        self._skip = 0
        self._limit = 0

    def sort(self, key: str, direction: int = 1):
        self._docs = sorted(self._docs, key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def skip(self, value: int):
        self._skip = value
        return self

    def limit(self, value: int):
        self._limit = value
        return self

    def _window(self) -> list[dict]:
        docs = self._docs[self._skip:]
        return docs[:self._limit] if self._limit else docs

    async def to_list(self, length: int | None = None):
        docs = self._window()
        return docs[:length] if length else docs

    def __aiter__(self):
        self._iter = iter(self._window())
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.docs: list[dict] = []

    def _find_raw(self, query: dict | None) -> list[dict]:
        return [d for d in self.docs if matches(d, query)]

    async def create_index(self, *args, **kwargs):
        return "ok"

    async def insert_one(self, doc: dict, session=None):
        doc.setdefault("_id", ObjectId())
        if any(d["_id"] == doc["_id"] for d in self.docs):
            raise DuplicateKeyError(f"E11000 duplicate key in {self.name}")
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one(self, query: dict | None = None, projection: dict | None = None, session=None):
        found = self._find_raw(query)
        return _project(found[0], projection) if found else None

    def find(self, query: dict | None = None, projection: dict | None = None, session=None):
        return FakeCursor([_project(d, projection) for d in self._find_raw(query)])

    async def count_documents(self, query: dict | None = None, session=None) -> int:
        return len(self._find_raw(query))

    async def update_one(self, query: dict, update: dict, upsert: bool = False, session=None):
        found = self._find_raw(query)
        if found:
            _apply_update(found[0], update)
            return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        doc = {k: v for k, v in query.items() if not k.startswith("$") and not isinstance(v, dict)}
        _apply_update(doc, update)
        for key, value in (update.get("$setOnInsert") or {}).items():
            doc[key] = value
        result = await self.insert_one(doc)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=result.inserted_id)

    async def update_many(self, query: dict, update: dict, session=None):
        found = self._find_raw(query)
        for doc in found:
            _apply_update(doc, update)
        return SimpleNamespace(matched_count=len(found), modified_count=len(found))

    async def find_one_and_update(
        self, query: dict, update: dict, projection: dict | None = None,
        return_document=ReturnDocument.BEFORE, upsert: bool = False, session=None,
    ):
        found = self._find_raw(query)
        if not found:
            return None
        before = copy.deepcopy(found[0])
        _apply_update(found[0], update)
        return _project(found[0] if return_document == ReturnDocument.AFTER else before, projection)

    async def delete_one(self, query: dict, session=None):
        found = self._find_raw(query)
        if found:
            self.docs.remove(found[0])
        return SimpleNamespace(deleted_count=len(found[:1]))

    def aggregate(self, pipeline: list[dict], session=None):
        docs = [copy.deepcopy(d) for d in self.docs]
        for stage in pipeline:
            if "$match" in stage:
                docs = [d for d in docs if matches(d, stage["$match"])]
            elif "$group" in stage:
                docs = self._group(docs, stage["$group"])
            else:
                raise NotImplementedError(next(iter(stage)))
        return FakeCursor(docs)

    @staticmethod
    def _group(docs: list[dict], group: dict) -> list[dict]:
        key_expr = group["_id"]
        groups: dict[Any, dict] = {}
        for doc in docs:
            key = doc.get(key_expr[1:]) if isinstance(key_expr, str) else key_expr
            row = groups.setdefault(key, {"_id": key, **{f: 0 for f in group if f != "_id"}})
            for field, acc in group.items():
                if field == "_id":
                    continue
                arg = acc["$sum"]
                if isinstance(arg, str):
                    row[field] += doc.get(arg[1:]) or 0
                else:
                    row[field] += arg
        return list(groups.values())


class FakeDatabase:
    def __init__(self):
        self._collections: dict[str, FakeCollection] = {}
        self.commits = 0
        self.aborts = 0

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    async def command(self, name: str):
        return {"ok": 1.0}

    async def list_collection_names(self) -> list[str]:
        return sorted(self._collections)

    def snapshot(self) -> dict[str, list[dict]]:
        return {name: copy.deepcopy(c.docs) for name, c in self._collections.items()}

    def restore(self, state: dict[str, list[dict]]) -> None:
        for name, coll in self._collections.items():
            coll.docs = state.get(name, [])


class _FakeTransaction:
    def __init__(self, session: "FakeSession"):
        self._session = session

    async def __aenter__(self):
        self._state = self._session.db.snapshot()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self._session.db.commits += 1
        else:
            self._session.db.restore(self._state)
            self._session.db.aborts += 1
        return False


class FakeSession:
    def __init__(self, db: FakeDatabase):
        self.db = db

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def start_transaction(self):
        return _FakeTransaction(self)


class FakeClient:
    def __init__(self, db: FakeDatabase):
        self.db = db

    async def start_session(self):
        return FakeSession(self.db)

    def close(self):
        pass


@pytest.fixture
def fake_mongo(monkeypatch):
    """In-memory database wired into wicketbook.database."""
    import wicketbook.database as _db

    fake_db = FakeDatabase()
    monkeypatch.setattr(_db, "db", fake_db)
    monkeypatch.setattr(_db, "client", FakeClient(fake_db))
    return fake_db


@pytest.fixture(autouse=True)
def _pinned_wallet_settings(monkeypatch):
    from wicketbook.config import settings

    for name, value in {
        "STARTING_BALANCE": 1000.0,
        "MIN_STAKE": 100.0,
        "MAX_STAKE": None,
        "MIN_WITHDRAWAL": 500.0,
        "BONUS_MULTIPLIER": 2,
        "BONUS_POLICY": "settlement",
        "PAYOUT_DECIMALS": 0,
        "JWT_SECRET": "wicketbook-test-secret-0123456789abcdef",
        "JWT_SECRET_OLD": "",
    }.items():
        monkeypatch.setattr(settings, name, value)
