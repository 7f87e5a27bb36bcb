"""MongoDB SignalStore, using pymongo's asyncio client.

Documents live in the ``signals`` collection with camelCase fields and
``createdAt`` / ``updatedAt`` lifecycle timestamps.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, AsyncMongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from xray_server.core.errors import NotFound, PersistenceError
from xray_server.core.models import (
    SignalFilter,
    SignalRecord,
    SignalStatistics,
    StoredSignal,
    normalize_record,
)
from xray_server.storage.base import prepare_update, round_stat

log = structlog.get_logger()

INDEXES = [
    [("deviceId", ASCENDING)],
    [("timestamp", ASCENDING)],
    [("createdAt", ASCENDING)],
    [("deviceId", ASCENDING), ("timestamp", ASCENDING)],
    [("deviceId", ASCENDING), ("createdAt", ASCENDING)],
]


def build_query(filter: SignalFilter | None, device_id: str | None = None) -> dict[str, Any]:
    """Translate a SignalFilter into a find() query document."""
    f = filter or SignalFilter()
    query: dict[str, Any] = {}
    device_id = device_id or f.device_id
    if device_id:
        query["deviceId"] = device_id
    if f.has_time_range:
        query["timestamp"] = {"$gte": f.start_time, "$lte": f.end_time}
    return query


def build_statistics_pipeline(device_id: str | None = None) -> list[dict[str, Any]]:
    match: dict[str, Any] = {}
    if device_id:
        match["deviceId"] = device_id
    return [
        {"$match": match},
        {
            "$group": {
                "_id": None,
                "totalSignals": {"$sum": 1},
                "totalDevices": {"$addToSet": "$deviceId"},
                "averageDataLength": {"$avg": "$dataLength"},
                "averageDataVolume": {"$avg": "$dataVolume"},
                "averageSpeed": {"$avg": "$averageSpeed"},
                "maxSpeed": {"$max": "$maxSpeed"},
                "minSpeed": {"$min": "$minSpeed"},
            },
        },
    ]


def statistics_from_group(group: dict[str, Any] | None) -> SignalStatistics:
    if not group:
        return SignalStatistics()
    return SignalStatistics(
        total_signals=group["totalSignals"],
        total_devices=len(group["totalDevices"]),
        average_data_length=round_stat(group.get("averageDataLength")),
        average_data_volume=round_stat(group.get("averageDataVolume")),
        average_speed=round_stat(group.get("averageSpeed")),
        max_speed=group.get("maxSpeed") or 0,
        min_speed=group.get("minSpeed") or 0,
    )


def document_to_stored(doc: dict[str, Any]) -> StoredSignal:
    return StoredSignal(
        id=str(doc["_id"]),
        record=SignalRecord.from_document(doc),
        created_at=doc["createdAt"],
        updated_at=doc["updatedAt"],
    )


def _object_id(record_id: str) -> ObjectId:
    try:
        return ObjectId(record_id)
    except (InvalidId, TypeError) as exc:
        raise NotFound(record_id) from exc


class MongoSignalStore:
    """SignalStore backed by a MongoDB collection."""

    def __init__(self, collection, client: AsyncMongoClient | None = None) -> None:
        self._collection = collection
        self._client = client

    @classmethod
    def from_uri(cls, uri: str, database: str = "", collection: str = "signals") -> MongoSignalStore:
        client: AsyncMongoClient = AsyncMongoClient(uri, tz_aware=True)
        db = client[database] if database else client.get_default_database(default="iot-xray")
        return cls(db[collection], client=client)

    async def ensure_indexes(self) -> None:
        try:
            for keys in INDEXES:
                await self._collection.create_index(keys)
        except PyMongoError as exc:
            log.error("mongo_index_failed", exc_info=True)
            raise PersistenceError(f"index creation failed: {exc}") from exc
        log.info("mongo_indexes_ready", count=len(INDEXES))

    async def create(self, record: SignalRecord) -> StoredSignal:
        now = datetime.now(timezone.utc)
        doc = normalize_record(record).to_document()
        doc["createdAt"] = now
        doc["updatedAt"] = now
        try:
            result = await self._collection.insert_one(doc)
        except PyMongoError as exc:
            log.error("mongo_insert_failed", device=record.device_id, exc_info=True)
            raise PersistenceError(f"insert failed: {exc}") from exc
        doc["_id"] = result.inserted_id
        return document_to_stored(doc)

    async def _find(self, query: dict[str, Any], filter: SignalFilter | None) -> list[StoredSignal]:
        f = filter or SignalFilter()
        cursor = self._collection.find(query)
        if f.skip:
            cursor = cursor.skip(f.skip)
        if f.limit:
            cursor = cursor.limit(f.limit)
        try:
            docs = await cursor.to_list(length=None)
        except PyMongoError as exc:
            log.error("mongo_find_failed", query=query, exc_info=True)
            raise PersistenceError(f"query failed: {exc}") from exc
        return [document_to_stored(doc) for doc in docs]

    async def find_all(self, filter: SignalFilter | None = None) -> list[StoredSignal]:
        return await self._find(build_query(filter), filter)

    async def find_by_device(self, device_id: str, filter: SignalFilter | None = None) -> list[StoredSignal]:
        return await self._find(build_query(filter, device_id=device_id), filter)

    async def find_by_id(self, record_id: str) -> StoredSignal:
        oid = _object_id(record_id)
        try:
            doc = await self._collection.find_one({"_id": oid})
        except PyMongoError as exc:
            raise PersistenceError(f"lookup failed: {exc}") from exc
        if doc is None:
            raise NotFound(record_id)
        return document_to_stored(doc)

    async def update(self, record_id: str, fields: dict[str, Any]) -> StoredSignal:
        oid = _object_id(record_id)
        changes = prepare_update(fields)
        changes["updatedAt"] = datetime.now(timezone.utc)
        try:
            doc = await self._collection.find_one_and_update(
                {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            log.error("mongo_update_failed", record_id=record_id, exc_info=True)
            raise PersistenceError(f"update failed: {exc}") from exc
        if doc is None:
            raise NotFound(record_id)
        return document_to_stored(doc)

    async def delete(self, record_id: str) -> None:
        oid = _object_id(record_id)
        try:
            result = await self._collection.delete_one({"_id": oid})
        except PyMongoError as exc:
            log.error("mongo_delete_failed", record_id=record_id, exc_info=True)
            raise PersistenceError(f"delete failed: {exc}") from exc
        if result.deleted_count == 0:
            raise NotFound(record_id)

    async def statistics(self, device_id: str | None = None) -> SignalStatistics:
        try:
            cursor = await self._collection.aggregate(build_statistics_pipeline(device_id))
            groups = await cursor.to_list(length=None)
        except PyMongoError as exc:
            log.error("mongo_aggregate_failed", device=device_id, exc_info=True)
            raise PersistenceError(f"aggregation failed: {exc}") from exc
        return statistics_from_group(groups[0] if groups else None)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
