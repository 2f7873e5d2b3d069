"""
Remote Collection Store adapter.

Per-identity, per-kind document collections (parts, builds) with
create / update_fields / delete / get / bulk_read / batch_create and a live
subscription. Backed by SQLAlchemy; every call commits on its own, there is
no multi-document transaction except batch_create. Session work runs in a
worker thread so a slow write never blocks the event loop.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Type
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pcinventory.db.enums import CollectionKind
from pcinventory.errors import (
    DocumentNotFoundError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
)
from pcinventory.logger import get_logger
from pcinventory.models.build import Build
from pcinventory.models.part import Part
from pcinventory.schemas.base_dto import BaseDTO
from pcinventory.schemas.build_dto import BuildDTO
from pcinventory.schemas.part_dto import PartDTO

logger = get_logger(__name__)

OnChange = Callable[[List[Any]], None]
OnError = Callable[[Exception], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChangeFeed:
    """
    In-process fan-out of change notifications, keyed by (owner_id, kind).
    """

    def __init__(self):
        self._subscribers: Dict[Tuple[str, str], List[Tuple[OnChange, Optional[OnError]]]] = {}

    def add(self, key: Tuple[str, str], on_change: OnChange, on_error: Optional[OnError]) -> Callable[[], None]:
        entry = (on_change, on_error)
        self._subscribers.setdefault(key, []).append(entry)

        def unsubscribe() -> None:
            subs = self._subscribers.get(key, [])
            if entry in subs:
                subs.remove(entry)

        return unsubscribe

    def subscribers(self, key: Tuple[str, str]) -> List[Tuple[OnChange, Optional[OnError]]]:
        return list(self._subscribers.get(key, []))


class SqlCollection:
    """
    One identity's collection of one document kind.

    :param session_factory: sessionmaker bound to the store database
    :param model: ORM class (Part / Build)
    :param dto_cls: DTO class returned to callers
    :param owner_id: identity uid scoping every query
    :param kind: collection kind, used as change feed key
    :param feed: shared ChangeFeed
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        model: Type,
        dto_cls: Type[BaseDTO],
        owner_id: str,
        kind: CollectionKind,
        feed: ChangeFeed,
    ):
        self._session_factory = session_factory
        self.model = model
        self.dto_cls = dto_cls
        self.owner_id = owner_id
        self.kind = kind
        self._feed = feed

    @property
    def feed_key(self) -> Tuple[str, str]:
        return (self.owner_id, self.kind.value)

    # ======================================================
    # 🔧 Internal helpers
    # ======================================================

    def _next_seq(self, db: Session) -> int:
        current = db.execute(
            select(func.max(self.model.seq)).where(self.model.owner_id == self.owner_id)
        ).scalar()
        return (current or 0) + 1

    def _build_row(self, db: Session, fields: Dict[str, Any], seq: int):
        try:
            values = self.dto_cls.to_column_values(fields)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        now = _utcnow()
        row = self.model(
            id=str(uuid4()),
            owner_id=self.owner_id,
            created_at=now,
            updated_at=now,
            seq=seq,
            **values,
        )
        self._assert_invariants(row)
        return row

    def _assert_invariants(self, row) -> None:
        problems = row.check_invariants()
        if problems:
            raise ValidationError(f"{self.kind.value} document rejected: {'; '.join(problems)}")

    def _load_row(self, db: Session, doc_id: str):
        return db.execute(
            select(self.model).where(
                self.model.id == doc_id,
                self.model.owner_id == self.owner_id,
            )
        ).scalar_one_or_none()

    def _read_all(self) -> List[BaseDTO]:
        with self._session_factory() as db:
            rows = db.execute(
                select(self.model)
                .where(self.model.owner_id == self.owner_id)
                .order_by(self.model.created_at.desc(), self.model.seq.desc())
            ).scalars().all()
            return [self.dto_cls.from_orm_model(r) for r in rows]

    def _notify_snapshot(self) -> Tuple[List[Any], Optional[Exception]]:
        try:
            return self._read_all(), None
        except SQLAlchemyError as e:
            logger.error("Change notification read failed for %s: %s", self.feed_key, e)
            return [], StoreError(str(e))

    async def _notify(self) -> None:
        '''Push a fresh snapshot to every subscriber, on the caller's loop.'''
        subscribers = self._feed.subscribers(self.feed_key)
        if not subscribers:
            return
        snapshot, error = await asyncio.to_thread(self._notify_snapshot)
        if error is not None:
            for _, on_error in subscribers:
                if on_error is not None:
                    on_error(error)
            return
        for on_change, _ in subscribers:
            on_change(list(snapshot))

    # ======================================================
    # 🗄️ Blocking session work (runs in a worker thread)
    # ======================================================

    def _create_sync(self, fields: Dict[str, Any]) -> str:
        with self._session_factory() as db:
            try:
                row = self._build_row(db, fields, self._next_seq(db))
                db.add(row)
                db.commit()
                return row.id
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreError(f"create {self.kind.value} failed: {e}") from e

    def _batch_create_sync(self, docs: List[Dict[str, Any]]) -> List[str]:
        with self._session_factory() as db:
            try:
                seq = self._next_seq(db)
                rows = []
                for offset, fields in enumerate(docs):
                    rows.append(self._build_row(db, fields, seq + offset))
                db.add_all(rows)
                db.commit()
                return [r.id for r in rows]
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreError(f"batch create {self.kind.value} failed: {e}") from e
            except ValidationError:
                db.rollback()
                raise

    def _update_fields_sync(self, doc_id: str, fields: Dict[str, Any]) -> None:
        with self._session_factory() as db:
            try:
                row = self._load_row(db, doc_id)
                if row is None:
                    raise DocumentNotFoundError(f"{self.kind.value}/{doc_id} does not exist")
                try:
                    values = self.dto_cls.to_column_values(fields)
                except ValueError as e:
                    raise ValidationError(str(e)) from e
                for column, value in values.items():
                    setattr(row, column, value)
                row.updated_at = _utcnow()
                self._assert_invariants(row)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreError(f"update {self.kind.value}/{doc_id} failed: {e}") from e

    def _delete_sync(self, doc_id: str) -> bool:
        with self._session_factory() as db:
            try:
                row = self._load_row(db, doc_id)
                if row is None:
                    return False
                db.delete(row)
                db.commit()
                return True
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreError(f"delete {self.kind.value}/{doc_id} failed: {e}") from e

    def _get_sync(self, doc_id: str) -> Optional[BaseDTO]:
        with self._session_factory() as db:
            try:
                row = self._load_row(db, doc_id)
            except SQLAlchemyError as e:
                raise StoreError(f"read {self.kind.value}/{doc_id} failed: {e}") from e
            return self.dto_cls.from_orm_model(row) if row is not None else None

    def _bulk_read_sync(self) -> List[BaseDTO]:
        try:
            return self._read_all()
        except SQLAlchemyError as e:
            raise StoreError(f"bulk read {self.kind.value} failed: {e}") from e

    # ======================================================
    # 📄 Document operations
    # ======================================================

    async def create(self, fields: Dict[str, Any]) -> str:
        '''
        Create a document and return its server-issued id.

        :param fields: document fields, server fields are assigned here
        :type fields: Dict[str, Any]
        '''
        doc_id = await asyncio.to_thread(self._create_sync, fields)
        logger.info("Created %s/%s for owner %s", self.kind.value, doc_id, self.owner_id)
        await self._notify()
        return doc_id

    async def batch_create(self, docs: List[Dict[str, Any]]) -> List[str]:
        '''
        Create several documents in one transaction; all or nothing.

        :param docs: list of document fields
        :type docs: List[Dict[str, Any]]
        '''
        if not docs:
            return []
        ids = await asyncio.to_thread(self._batch_create_sync, docs)
        logger.info("Batch created %d %s for owner %s", len(ids), self.kind.value, self.owner_id)
        await self._notify()
        return ids

    async def update_fields(self, doc_id: str, fields: Dict[str, Any]) -> None:
        '''
        Update the given fields of an existing document.

        :param doc_id: document id
        :param fields: partial document
        '''
        await asyncio.to_thread(self._update_fields_sync, doc_id, fields)
        logger.info("Updated %s/%s fields=%s", self.kind.value, doc_id, sorted(fields))
        await self._notify()

    async def delete(self, doc_id: str) -> None:
        '''Delete a document; deleting a missing document is a no-op.'''
        if not await asyncio.to_thread(self._delete_sync, doc_id):
            return
        logger.info("Deleted %s/%s", self.kind.value, doc_id)
        await self._notify()

    async def get(self, doc_id: str) -> Optional[BaseDTO]:
        return await asyncio.to_thread(self._get_sync, doc_id)

    async def bulk_read(self) -> List[BaseDTO]:
        '''All documents of this collection, newest first.'''
        return await asyncio.to_thread(self._bulk_read_sync)

    def subscribe(self, on_change: OnChange, on_error: Optional[OnError] = None) -> Callable[[], None]:
        '''
        Live read: on_change receives the full ordered snapshot now and after every write.

        :return: unsubscribe handle
        '''
        unsubscribe = self._feed.add(self.feed_key, on_change, on_error)
        try:
            snapshot = self._read_all()
        except SQLAlchemyError as e:
            if on_error is not None:
                on_error(StoreError(str(e)))
            return unsubscribe
        on_change(list(snapshot))
        return unsubscribe


class RemoteStore:
    """
    Entry point to the per-identity collections.
    Engine code receives the identity explicitly, never from global state.
    """

    collection_cls: Type[SqlCollection] = SqlCollection

    def __init__(self, session_factory: sessionmaker, feed: Optional[ChangeFeed] = None):
        self.session_factory = session_factory
        self.feed = feed or ChangeFeed()

    def _owner(self, identity) -> str:
        if identity is None or not getattr(identity, "uid", None):
            raise PermissionDeniedError("no identity is active")
        return identity.uid

    def parts(self, identity) -> SqlCollection:
        return self.collection_cls(
            self.session_factory, Part, PartDTO, self._owner(identity), CollectionKind.parts, self.feed
        )

    def builds(self, identity) -> SqlCollection:
        return self.collection_cls(
            self.session_factory, Build, BuildDTO, self._owner(identity), CollectionKind.builds, self.feed
        )
