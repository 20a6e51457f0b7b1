from typing import Optional, List
from sqlalchemy import event, select, func
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from contextlib import asynccontextmanager

from skillrank.config import Config
from skillrank.constants import DEFAULT_SPORTS
from skillrank.database.models import (
    Base, Sport, Technique, PlayerProfile, SportProfile
)
from skillrank.utils.logger import setup_logger

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.engine = None
        self.async_session = None

    @property
    def session_factory(self):
        return self.async_session

    async def initialize(self, seed_defaults: bool = True):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        database_url = self.database_url or Config.get_async_database_url()
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        engine_kwargs = {'echo': Config.DEBUG}
        if database_url.startswith('sqlite'):
            engine_kwargs['connect_args'] = {'timeout': Config.SQLITE_BUSY_TIMEOUT}

        self.engine = create_async_engine(database_url, **engine_kwargs)

        if self.engine.dialect.name == 'sqlite':
            self._install_sqlite_locking()

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

        if seed_defaults:
            await self.initialize_default_data()

    def _install_sqlite_locking(self):
        """
        Make every SQLite transaction take the write lock up front.

        SQLite ignores SELECT ... FOR UPDATE, so the match row re-read at the
        start of a confirmation would otherwise be able to interleave with a
        concurrent confirmation. BEGIN IMMEDIATE serialises writers for the
        whole transaction; the second writer waits up to SQLITE_BUSY_TIMEOUT.
        """
        @event.listens_for(self.engine.sync_engine, "connect")
        def _disable_driver_begin(dbapi_connection, connection_record):
            # Stop the driver from emitting its own deferred BEGIN
            dbapi_connection.isolation_level = None

        @event.listens_for(self.engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    async def initialize_default_data(self):
        """Seed the sport and technique catalog when it is empty"""
        async with self.transaction() as session:
            result = await session.execute(select(func.count(Sport.id)))
            sport_count = result.scalar()

            if sport_count:
                return

            self.logger.info("Initializing default sports...")
            for slug, (name, techniques) in DEFAULT_SPORTS.items():
                sport = Sport(slug=slug, name=name, is_active=True)
                sport.techniques = [
                    Technique(slug=technique_slug, name=technique_name)
                    for technique_slug, technique_name in techniques
                ]
                session.add(sport)

            self.logger.info(f"Added {len(DEFAULT_SPORTS)} default sports")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure. Exceptions must be allowed to
        propagate out of the context for rollback to occur.

        Usage:
            async with db.transaction() as session:
                match = await session.get(Match, match_id, with_for_update=True)
                ...
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Catalog operations
    async def get_sport_by_slug(self, slug: str) -> Optional[Sport]:
        async with self.get_session() as session:
            result = await session.execute(select(Sport).where(Sport.slug == slug))
            return result.scalar_one_or_none()

    async def get_all_sports(self, active_only: bool = True) -> List[Sport]:
        async with self.get_session() as session:
            query = select(Sport)
            if active_only:
                query = query.where(Sport.is_active == True)
            result = await session.execute(query.order_by(Sport.slug))
            return result.scalars().all()

    async def get_techniques_for_sport(self, sport_id: int) -> List[Technique]:
        async with self.get_session() as session:
            result = await session.execute(
                select(Technique)
                .where(Technique.sport_id == sport_id)
                .order_by(Technique.id)
            )
            return result.scalars().all()

    async def create_technique(self, sport_id: int, slug: str, name: str) -> Technique:
        """Add a technique to a sport's catalog"""
        async with self.transaction() as session:
            technique = Technique(sport_id=sport_id, slug=slug, name=name)
            session.add(technique)
            await session.flush()
            await session.refresh(technique)
            return technique

    # Profile lookups
    async def get_profile_by_user_id(self, user_id: str) -> Optional[PlayerProfile]:
        async with self.get_session() as session:
            result = await session.execute(
                select(PlayerProfile).where(PlayerProfile.user_id == user_id)
            )
            return result.scalar_one_or_none()

    async def get_sport_profile(self, profile_id: int, sport_id: int) -> Optional[SportProfile]:
        async with self.get_session() as session:
            result = await session.execute(
                select(SportProfile).where(
                    SportProfile.profile_id == profile_id,
                    SportProfile.sport_id == sport_id
                )
            )
            return result.scalar_one_or_none()

    async def get_sport_profile_by_id(self, sport_profile_id: int) -> Optional[SportProfile]:
        async with self.get_session() as session:
            return await session.get(SportProfile, sport_profile_id)
