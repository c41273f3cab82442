"""
Process-wide stores for accounts, materials, audit events and delivery logs.

Each store keeps its records as one JSON list in the key-value store and
guards every read-modify-write sequence with its own lock, so concurrent
requests served from the thread pool cannot lose updates.
"""
import json
import threading
from datetime import datetime, timezone
from typing import Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from database.kv_store import KeyValueStore
from database.models import UserRole
from database.schemas import Account, Material, AuditEvent, DeliveryLog
import config

T = TypeVar("T", bound=BaseModel)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into naive UTC (accepts a trailing ``Z``)."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class _DocumentStore(Generic[T]):
    """JSON list of records under a single key."""

    model: Type[T]

    def __init__(self, kv: KeyValueStore, key: str):
        self.kv = kv
        self.key = key
        self.lock = threading.RLock()

    def _load(self) -> List[T]:
        raw = self.kv.get(self.key)
        if not raw:
            return []
        return [self.model.model_validate(item) for item in json.loads(raw)]

    def _write(self, records: List[T]) -> None:
        payload = [record.model_dump(mode="json") for record in records]
        self.kv.set(self.key, json.dumps(payload))

    def _upsert(self, record: T) -> T:
        with self.lock:
            records = self._load()
            for index, existing in enumerate(records):
                if existing.id == record.id:
                    records[index] = record
                    break
            else:
                records.append(record)
            self._write(records)
        return record

    def _remove(self, record_id: str) -> bool:
        with self.lock:
            records = self._load()
            remaining = [r for r in records if r.id != record_id]
            if len(remaining) == len(records):
                return False
            self._write(remaining)
            return True

    def count(self) -> int:
        with self.lock:
            return len(self._load())


class CredentialStore(_DocumentStore[Account]):
    """Accounts, password hashes and lockout counters."""

    model = Account

    def __init__(self, kv: KeyValueStore, key: str = config.USERS_KEY):
        super().__init__(kv, key)

    def list_accounts(self, role: Optional[UserRole] = None) -> List[Account]:
        with self.lock:
            accounts = self._load()
        if role is not None:
            accounts = [a for a in accounts if a.role == role]
        return accounts

    def get(self, account_id: str) -> Optional[Account]:
        with self.lock:
            return next((a for a in self._load() if a.id == account_id), None)

    def get_by_username(self, username: str) -> Optional[Account]:
        with self.lock:
            return next((a for a in self._load() if a.username == username), None)

    def save(self, account: Account) -> Account:
        return self._upsert(account)

    def delete(self, account_id: str) -> bool:
        return self._remove(account_id)


class MaterialStore(_DocumentStore[Material]):
    """Material metadata plus base64-inlined file content."""

    model = Material

    def __init__(self, kv: KeyValueStore, key: str = config.MATERIALS_KEY):
        super().__init__(kv, key)

    def _file_key(self, material_id: str) -> str:
        return f"{config.MATERIAL_FILES_KEY_PREFIX}{material_id}"

    def list_materials(self) -> List[Material]:
        with self.lock:
            return self._load()

    def get(self, material_id: str) -> Optional[Material]:
        with self.lock:
            return next((m for m in self._load() if m.id == material_id), None)

    def save(self, material: Material) -> Material:
        return self._upsert(material)

    def delete(self, material_id: str) -> bool:
        with self.lock:
            removed = self._remove(material_id)
            if removed:
                self.kv.delete(self._file_key(material_id))
            return removed

    def save_file(self, material_id: str, content_b64: str) -> None:
        self.kv.set(self._file_key(material_id), content_b64)

    def get_file(self, material_id: str) -> Optional[str]:
        return self.kv.get(self._file_key(material_id))

    def for_student(self, student: Account) -> List[Material]:
        """Materials a student may see: active, semester reached, same academic year."""
        if student.role != UserRole.STUDENT or not student.currentSemester:
            return []
        return [m for m in self.list_materials() if m.is_visible_to(student)]

    def by_teacher(self, teacher_id: str) -> List[Material]:
        return [m for m in self.list_materials() if m.uploadedBy == teacher_id]

    def search(
        self,
        query: Optional[str] = None,
        semester: Optional[int] = None,
        subject: Optional[str] = None
    ) -> List[Material]:
        needle = (query or "").lower()
        results = []
        for material in self.list_materials():
            if not material.isActive:
                continue
            if needle and not (
                needle in material.title.lower()
                or needle in material.description.lower()
                or any(needle in tag.lower() for tag in material.tags)
            ):
                continue
            if semester and material.semester != semester:
                continue
            if subject and material.subject != subject:
                continue
            results.append(material)
        return results

    def increment_download_count(self, material_id: str) -> Optional[Material]:
        with self.lock:
            material = self.get(material_id)
            if material is None:
                return None
            material.downloadCount += 1
            return self.save(material)

    def subjects(self) -> List[str]:
        return sorted({m.subject for m in self.list_materials()})


class _CappedLogStore(_DocumentStore[T]):
    """Append-only log, newest first, truncated to ``max_entries``."""

    def __init__(self, kv: KeyValueStore, key: str, max_entries: int = config.MAX_LOG_ENTRIES):
        super().__init__(kv, key)
        self.max_entries = max_entries

    def append(self, entry: T) -> T:
        with self.lock:
            entries = self._load()
            entries.insert(0, entry)
            del entries[self.max_entries:]
            self._write(entries)
        return entry

    def list(self) -> List[T]:
        with self.lock:
            return self._load()


class AuditLogStore(_CappedLogStore[AuditEvent]):
    model = AuditEvent

    def __init__(self, kv: KeyValueStore, key: str = config.AUDIT_LOGS_KEY, max_entries: int = config.MAX_LOG_ENTRIES):
        super().__init__(kv, key, max_entries)

    def list_by_actor(self, actor_id: str) -> List[AuditEvent]:
        return [e for e in self.list() if e.userId == actor_id]

    def list_by_date_range(self, start: datetime, end: datetime) -> List[AuditEvent]:
        """Events with ``start <= timestamp <= end``."""
        return [e for e in self.list() if start <= parse_timestamp(e.timestamp) <= end]


class DeliveryLogStore(_CappedLogStore[DeliveryLog]):
    model = DeliveryLog

    def __init__(self, kv: KeyValueStore, key: str = config.DELIVERY_LOGS_KEY, max_entries: int = config.MAX_LOG_ENTRIES):
        super().__init__(kv, key, max_entries)

    def list_by_student(self, student_id: str) -> List[DeliveryLog]:
        return [log for log in self.list() if log.studentId == student_id]
