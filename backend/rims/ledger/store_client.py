"""
Clients for the durable store.

The ledger core is agnostic to where records persist. Three backends share
one interface:

- HttpStore: the Flask store service over HTTP (httpx)
- SqlStore: the same service layer called in-process (CLI, seeding)
- MemoryStore: local cache, optionally persisted to a JSON file; used when
  the store service cannot be reached

Every backend raises StoreError (or a subclass) on failure. The sync layer
catches these; ledger callers never see them.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

import httpx


logger = logging.getLogger(__name__)


COLLECTION_NAMES = (
    "inventory",
    "transactions",
    "suppliers",
    "employees",
    "customers",
    "expenses",
    "purchase_orders",
    "cash_shifts",
    "locations",
)


class StoreError(Exception):
    """Raised when the durable store rejects or fails a write."""
    pass


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached. Retryable."""
    pass


class StoreConflictError(StoreError):
    """Raised when the store refuses a stale write. Not retryable."""
    pass


class DurableStore:
    """Interface implemented by every store backend."""

    name = "store"

    def is_available(self) -> bool:
        raise NotImplementedError

    def fetch_all(self, collection: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def upsert(self, collection: str, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, collection: str, record_id: str) -> bool:
        raise NotImplementedError

    def submit_batch(
        self,
        *,
        transactions: List[Dict[str, Any]],
        inventory_updates: List[Dict[str, Any]],
        customer_update: Optional[Dict[str, Any]] = None,
        shift_update: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def close(self) -> None:
        pass


# =============================================================================
# HTTP
# =============================================================================

class HttpStore(DurableStore):
    """
    httpx client for the store service.

    A prebuilt httpx.Client may be injected (tests route it into the Flask
    app with httpx.WSGITransport).
    """

    name = "http"

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def _request(self, method: str, path: str, json_body: Any = None, ok_statuses=()) -> httpx.Response:
        try:
            response = self.client.request(method, f"/api{path}", json=json_body)
        except httpx.TransportError as exc:
            raise StoreUnavailableError(f"{method} {path} failed: {exc}") from exc

        if response.status_code in ok_statuses:
            return response
        if response.status_code == 409:
            raise StoreConflictError(self._error_text(response))
        if response.status_code >= 500:
            raise StoreUnavailableError(f"{method} {path}: {self._error_text(response)}")
        if response.status_code >= 400:
            raise StoreError(f"{method} {path}: {self._error_text(response)}")
        return response

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            return response.json().get("error") or response.text
        except ValueError:
            return response.text or f"HTTP {response.status_code}"

    def is_available(self) -> bool:
        try:
            response = self.client.get("/api/health", timeout=2.0)
        except httpx.TransportError:
            return False
        return response.status_code == 200

    def fetch_all(self, collection: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/{collection}").json()

    def upsert(self, collection: str, record: Dict[str, Any]) -> None:
        self._request("POST", f"/{collection}", record)

    def delete(self, collection: str, record_id: str) -> bool:
        response = self._request("DELETE", f"/{collection}/{record_id}", ok_statuses=(404,))
        return response.status_code != 404

    def submit_batch(
        self,
        *,
        transactions,
        inventory_updates,
        customer_update=None,
        shift_update=None,
    ) -> Dict[str, Any]:
        body = {
            "transactions": transactions,
            "inventory_updates": inventory_updates,
            "customer_update": customer_update,
            "shift_update": shift_update,
        }
        return self._request("POST", "/sales", body).json()

    def close(self) -> None:
        self.client.close()


# =============================================================================
# IN-PROCESS SQL
# =============================================================================

class SqlStore(DurableStore):
    """Calls the store service layer directly inside a Flask app context."""

    name = "sql"

    def __init__(self, app):
        self.app = app

    def _call(self, func, *args, **kwargs):
        from rims.services.store_service import AppendOnlyError, UnknownCollectionError
        from rims.validation import ConflictError, ValidationError

        with self.app.app_context():
            try:
                return func(*args, **kwargs)
            except ConflictError as exc:
                raise StoreConflictError(str(exc)) from exc
            except (ValidationError, AppendOnlyError, UnknownCollectionError) as exc:
                raise StoreError(str(exc)) from exc

    def is_available(self) -> bool:
        return True

    def fetch_all(self, collection: str) -> List[Dict[str, Any]]:
        from rims.services import store_service
        return self._call(store_service.list_records, collection)

    def upsert(self, collection: str, record: Dict[str, Any]) -> None:
        from rims.services import store_service
        self._call(store_service.upsert_record, collection, record)

    def delete(self, collection: str, record_id: str) -> bool:
        from rims.services import store_service
        return self._call(store_service.delete_record, collection, record_id)

    def submit_batch(
        self,
        *,
        transactions,
        inventory_updates,
        customer_update=None,
        shift_update=None,
    ) -> Dict[str, Any]:
        from rims.services import store_service
        return self._call(
            store_service.apply_batch,
            transactions=transactions,
            inventory_updates=inventory_updates,
            customer_update=customer_update,
            shift_update=shift_update,
        )


# =============================================================================
# LOCAL CACHE
# =============================================================================

def _record_key(collection: str, record: Dict[str, Any]) -> str:
    if collection == "transactions":
        return f"{record['id']}#{record.get('line_no') or 1}"
    return record["id"]


class MemoryStore(DurableStore):
    """
    Local fallback store.

    No durability across restarts unless a cache path is given, in which case
    the whole key-space is rewritten to that JSON file after every write.
    """

    name = "memory"

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {c: {} for c in COLLECTION_NAMES}
        if path and os.path.exists(path):
            self._load()

    def _load(self) -> None:
        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        for collection, records in raw.items():
            if collection in self._data:
                self._data[collection] = {_record_key(collection, r): r for r in records}

    def _save(self) -> None:
        if not self.path:
            return
        snapshot = {c: list(records.values()) for c, records in self._data.items()}
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2)

    def _records(self, collection: str) -> Dict[str, Dict[str, Any]]:
        if collection not in self._data:
            raise StoreError(f"Unknown collection: {collection}")
        return self._data[collection]

    def _put(self, collection: str, record: Dict[str, Any]) -> None:
        records = self._records(collection)
        key = _record_key(collection, record)
        existing = records.get(key)
        if collection == "transactions" and existing is not None:
            return
        if collection == "inventory" and existing is not None:
            if record.get("version", 0) < existing.get("version", 0):
                raise StoreConflictError(
                    f"Stale inventory write for {record['id']}: "
                    f"version {record.get('version')} < stored {existing.get('version')}"
                )
        merged = dict(existing or {})
        merged.update(record)
        records[key] = merged

    def is_available(self) -> bool:
        return True

    def fetch_all(self, collection: str) -> List[Dict[str, Any]]:
        records = [dict(r) for r in self._records(collection).values()]
        if collection == "transactions":
            records.sort(key=lambda r: r.get("timestamp") or "", reverse=True)
        return records

    def upsert(self, collection: str, record: Dict[str, Any]) -> None:
        self._put(collection, record)
        self._save()

    def delete(self, collection: str, record_id: str) -> bool:
        if collection == "transactions":
            raise StoreError("transactions is append-only")
        removed = self._records(collection).pop(record_id, None) is not None
        self._save()
        return removed

    def submit_batch(
        self,
        *,
        transactions,
        inventory_updates,
        customer_update=None,
        shift_update=None,
    ) -> Dict[str, Any]:
        # Validate every write against a copy so a failed batch leaves nothing behind
        staged = {c: dict(records) for c, records in self._data.items()}
        original, self._data = self._data, staged
        try:
            for tx in transactions:
                self._put("transactions", tx)
            for item in inventory_updates:
                if item["id"] not in original["inventory"]:
                    raise StoreError(f"Unknown inventory item {item['id']}")
                self._put("inventory", item)
            if customer_update:
                if customer_update["id"] not in original["customers"]:
                    raise StoreError(f"Unknown customer {customer_update['id']}")
                self._put("customers", customer_update)
            if shift_update:
                if shift_update["id"] not in original["cash_shifts"]:
                    raise StoreError(f"Unknown cash shift {shift_update['id']}")
                self._put("cash_shifts", shift_update)
        except Exception:
            self._data = original
            raise
        self._save()
        return {
            "success": True,
            "transactions": len(transactions),
            "inventory_updates": len(inventory_updates),
        }


def connect_store(config) -> DurableStore:
    """
    Probe the store service and fall back to the local cache when it is down.

    config may be the Config class or a Flask config mapping.
    """
    def _get(key, default=None):
        if isinstance(config, dict):
            return config.get(key, default)
        return getattr(config, key, default)

    url = _get("STORE_URL", "http://127.0.0.1:3001")
    store = HttpStore(url, timeout=float(_get("STORE_TIMEOUT_SECONDS", 5)))
    if store.is_available():
        logger.info("Connected to store service at %s", url)
        return store

    store.close()
    cache_path = _get("STORE_CACHE_PATH")
    logger.warning(
        "Store service at %s unavailable; using local cache (%s)",
        url,
        cache_path or "memory only",
    )
    return MemoryStore(path=cache_path)
