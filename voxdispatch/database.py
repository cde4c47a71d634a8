"""Async SQLite store for services and request logs.

The store is created once at startup and handed to every component that
needs it. All writes go through a single lock so concurrent appends and
health updates never interleave inside one transaction.
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


ModelT = TypeVar("ModelT", bound=Base)


class Store:
    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = create_async_engine(database_url, echo=False)
        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self._write_lock = asyncio.Lock()

    async def init(self):
        """Create the database directory and all tables."""
        db_path = self.engine.url.database
        if db_path and db_path != ":memory:":
            os.makedirs(Path(db_path).resolve().parent, exist_ok=True)

        async with self.engine.begin() as conn:
            from . import models  # noqa: ensure models are registered
            await conn.run_sync(Base.metadata.create_all)

        logger.info(f"Store initialized at {self.engine.url.render_as_string(hide_password=True)}")

    async def close(self):
        await self.engine.dispose()

    # ── Reads ─────────────────────────────────────────────────

    async def all(self, model: Type[ModelT], order_by=None, **filters: Any) -> List[ModelT]:
        async with self.session_factory() as db:
            stmt = select(model).filter_by(**filters)
            if order_by is not None:
                stmt = stmt.order_by(order_by)
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def get(self, model: Type[ModelT], obj_id: str) -> Optional[ModelT]:
        async with self.session_factory() as db:
            return await db.get(model, obj_id)

    # ── Writes (serialized) ───────────────────────────────────

    async def add(self, obj: ModelT) -> ModelT:
        async with self._write_lock:
            async with self.session_factory() as db:
                db.add(obj)
                await db.commit()
        return obj

    async def update(self, model: Type[ModelT], obj_id: str, **fields: Any) -> Optional[ModelT]:
        """Update fields of one row in place. Returns None if the row is gone."""
        async with self._write_lock:
            async with self.session_factory() as db:
                obj = await db.get(model, obj_id)
                if obj is None:
                    return None
                for key, value in fields.items():
                    setattr(obj, key, value)
                await db.commit()
                return obj

    async def delete(self, model: Type[ModelT], obj_id: str) -> Optional[ModelT]:
        """Delete one row by id. Returns the deleted row, or None if absent."""
        async with self._write_lock:
            async with self.session_factory() as db:
                obj = await db.get(model, obj_id)
                if obj is None:
                    return None
                await db.delete(obj)
                await db.commit()
                return obj
