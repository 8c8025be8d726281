# File: directory_crawler/store.py
"""directory_crawler.store: хранилище записей сайтов каталога.

Краулер обращается к записям только через контракт :class:`WebsiteStore`
(``find_by_key``, ``save``, ``update_crawl_status``) и не держит ссылки на них
дольше одного вызова.
"""

from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from directory_crawler.crawler.errors import PersistenceError, RecordNotFound
from directory_crawler.crawler.metadata import merge_technologies
from directory_crawler.crawler.models import CrawlStatus
from directory_crawler.logger import get_logger

log = get_logger("store")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebsiteRecord(BaseModel):
    """Запись сайта: домен, найденные технологии, метаданные и статус обхода."""
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    domain: str = Field(..., min_length=1)
    title: str = ""
    technologies: List[str] = Field(default_factory=list)
    metadata: Dict[str, str] = Field(default_factory=dict)
    last_crawled_at: Optional[datetime] = None
    last_crawl_status: Optional[CrawlStatus] = None
    crawl_error: str = ""
    updated_at: Optional[datetime] = None

    @field_validator("domain", mode="before")
    @classmethod
    def _with_scheme(cls, v: Any) -> Any:
        # домены без схемы хранятся как https://
        if isinstance(v, str):
            v = v.strip()
            if v and not v.startswith(("http://", "https://")):
                return f"https://{v}"
        return v

    @property
    def host(self) -> str:
        return self.domain.split("://", 1)[-1].split("/", 1)[0].lower()

    def apply_crawl(self, status: CrawlStatus, meta: Mapping[str, Any], at: Optional[datetime] = None) -> None:
        """
        Применяет итог обхода к записи.

        Технологии объединяются с уже известными и никогда не удаляются.
        Метаданные заменяются только при наличии в *meta*.
        """
        self.last_crawled_at = at or utcnow()
        self.last_crawl_status = status
        if meta.get("technologies"):
            self.technologies = merge_technologies(self.technologies, meta["technologies"])
        if meta.get("metadata"):
            self.metadata = dict(meta["metadata"])
            self.title = self.metadata.get("title") or self.title
        self.crawl_error = str(meta.get("error", "")) if status is CrawlStatus.FAILED else ""


class WebsiteStore(Protocol):
    def find_by_key(self, key: str) -> Optional[WebsiteRecord]: ...

    def save(self, record: WebsiteRecord) -> WebsiteRecord: ...

    def update_crawl_status(self, record_id: str, status: CrawlStatus, meta: Mapping[str, Any]) -> WebsiteRecord: ...


def _domain_key(value: str) -> str:
    value = value.strip().lower()
    value = value.split("://", 1)[-1]
    return value.split("/", 1)[0]


class InMemoryWebsiteStore:
    """Хранилище в памяти; основа для JSON-хранилища и тестов."""

    def __init__(self, records: Optional[List[WebsiteRecord]] = None) -> None:
        self._records: Dict[str, WebsiteRecord] = {}
        self._lock = threading.RLock()
        for record in records or []:
            self._records[record.id] = record

    def find_by_id(self, record_id: str) -> Optional[WebsiteRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record else None

    def find_by_key(self, key: str) -> Optional[WebsiteRecord]:
        """Ищет запись по домену (со схемой или без) либо по id."""
        with self._lock:
            if key in self._records:
                return self._records[key].model_copy(deep=True)
            wanted = _domain_key(key)
            for record in self._records.values():
                if record.host == wanted:
                    return record.model_copy(deep=True)
        return None

    def save(self, record: WebsiteRecord) -> WebsiteRecord:
        with self._lock:
            clash = self.find_by_key(record.domain)
            if clash is not None and clash.id != record.id:
                raise PersistenceError(f"domain already registered: {record.domain}")
            stored = record.model_copy(deep=True)
            stored.updated_at = utcnow()
            self._commit(stored)
        log.debug("Website record saved: %s (%s)", stored.domain, stored.id)
        return stored.model_copy(deep=True)

    def update_crawl_status(self, record_id: str, status: CrawlStatus, meta: Mapping[str, Any]) -> WebsiteRecord:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFound(record_id)
            updated = record.model_copy(deep=True)
            updated.apply_crawl(status, meta)
            updated.updated_at = utcnow()
            self._commit(updated)
        log.info("Crawl status %s for %s (%s)", status.value, updated.domain, record_id)
        return updated.model_copy(deep=True)

    def _commit(self, record: WebsiteRecord) -> None:
        previous = self._records.get(record.id)
        self._records[record.id] = record
        try:
            self._flush()
        except PersistenceError:
            if previous is None:
                del self._records[record.id]
            else:
                self._records[record.id] = previous
            raise

    def _flush(self) -> None:
        """Хук для хранилищ с диском."""


_RECORDS = TypeAdapter(List[WebsiteRecord])


class JsonWebsiteStore(InMemoryWebsiteStore):
    """Записи в JSON-файле; файл переписывается целиком после каждой записи."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        super().__init__(self._load(self.path))

    @staticmethod
    def _load(path: Path) -> List[WebsiteRecord]:
        if not path.exists():
            return []
        try:
            return _RECORDS.validate_json(path.read_bytes() or b"[]")
        except ValidationError as exc:
            raise PersistenceError(f"corrupt store {path}: {exc}") from exc

    def _flush(self) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = _RECORDS.dump_python(list(self._records.values()), mode="json")
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            raise PersistenceError(f"cannot write {self.path}: {exc}") from exc


__all__ = [
    "WebsiteRecord",
    "WebsiteStore",
    "InMemoryWebsiteStore",
    "JsonWebsiteStore",
    "utcnow",
]
