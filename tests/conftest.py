"""Shared fixtures: an in-memory stand-in for the hosted backend."""

import itertools
from datetime import datetime, timezone

import pytest

from karma.backend import ActionFailed


class FakeBackend:
    """Keeps records in dicts and mimics the backend's list/filter/create/update."""

    def __init__(self, user=None):
        self.records = {}
        self.user = user
        self.calls = []
        self.fail_writes = False
        self._ids = itertools.count(1)

    def seed(self, entity, *rows):
        self.records.setdefault(entity, []).extend(dict(r) for r in rows)
        return self

    async def list(self, entity, sort=None, limit=None):
        self.calls.append(("list", entity, sort, limit))
        return self._sorted(self.records.get(entity, []), sort, limit)

    async def filter(self, entity, query, sort=None, limit=None):
        self.calls.append(("filter", entity, dict(query)))
        rows = [r for r in self.records.get(entity, [])
                if all(r.get(k) == v for k, v in query.items())]
        return self._sorted(rows, sort, limit)

    async def get(self, entity, record_id):
        for row in self.records.get(entity, []):
            if row.get("id") == record_id:
                return dict(row)
        return None

    async def create(self, entity, fields):
        self.calls.append(("create", entity))
        if self.fail_writes:
            raise ActionFailed(f"Could not create {entity}")
        if entity == "Review":
            for row in self.records.get(entity, []):
                if (row["reviewer_id"], row["nonprofit_id"]) == (fields["reviewer_id"], fields["nonprofit_id"]):
                    raise ActionFailed("Could not create Review")
        row = dict(fields, id=f"{entity.lower()}-{next(self._ids)}",
                   created_date=datetime.now(timezone.utc).isoformat())
        self.records.setdefault(entity, []).append(row)
        return dict(row)

    async def update(self, entity, record_id, fields):
        self.calls.append(("update", entity, record_id))
        if self.fail_writes:
            raise ActionFailed(f"Could not update {entity}")
        for row in self.records.get(entity, []):
            if row.get("id") == record_id:
                row.update(fields)
                return dict(row)
        raise ActionFailed(f"Could not update {entity}")

    async def current_user(self):
        return dict(self.user) if self.user else None

    async def update_current_user(self, fields):
        self.calls.append(("update_current_user", dict(fields)))
        if self.fail_writes:
            raise ActionFailed("Could not update user")
        self.user = dict(self.user or {}, **fields)
        return dict(self.user)

    @staticmethod
    def _sorted(rows, sort, limit):
        rows = [dict(r) for r in rows]
        if sort:
            key = sort.lstrip("-")
            rows.sort(key=lambda r: r.get(key) or "", reverse=sort.startswith("-"))
        if limit is not None:
            rows = rows[:limit]
        return rows


@pytest.fixture
def backend():
    return FakeBackend()
