import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generic, Optional, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

from holdbook.core.clock import Clock
from holdbook.core.config import Settings
from holdbook.core.exceptions import ReferenceCollisionError, StoreUnavailableError, SystemFailure
from holdbook.core.unit_of_work import IUnitOfWork

if TYPE_CHECKING:
    from holdbook.locks import KeyedLock

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelType = TypeVar("ModelType", bound=DeclarativeBase)

UnitOfWorkFactory = Callable[[], IUnitOfWork]


class BaseRepository(Generic[ModelType]):
    """Base SQLAlchemy repository with the lookups every table needs"""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def get_row(self, id: Any, *, for_update: bool = False) -> Optional[ModelType]:
        """Get row by primary key, optionally locking it for the transaction"""
        return await self.session.get(self.model, id, with_for_update=for_update)

    async def add_row(self, row: ModelType) -> ModelType:
        self.session.add(row)
        await self.session.flush()
        return row


class IService:
    """Base service interface"""
    pass


class BaseService(IService):
    """Base service holding the collaborators every lifecycle service needs"""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        locks: "KeyedLock",
        clock: Clock,
        settings: Settings,
    ):
        self.uow_factory = uow_factory
        self.locks = locks
        self.clock = clock
        self.settings = settings

    async def _atomically(self, key: str, work: Callable[[IUnitOfWork], Awaitable[T]]) -> T:
        """Run *work* under the key lock inside one unit of work.

        Store outages are retried a bounded number of times; the whole unit is
        re-run from a fresh read on each attempt.
        """
        attempts = self.settings.STORE_RETRIES + 1
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                async with self.locks.hold(key):
                    async with self.uow_factory() as uow:
                        result = await work(uow)
                        await uow.commit()
                        return result
            except StoreUnavailableError as exc:
                last_error = exc
                logger.warning("Store unavailable for %s (attempt %s/%s): %s", key, attempt, attempts, exc)
        raise SystemFailure() from last_error

    async def _read(self, work: Callable[[IUnitOfWork], Awaitable[T]]) -> T:
        """Run a lock-free read in its own unit of work"""
        try:
            async with self.uow_factory() as uow:
                return await work(uow)
        except StoreUnavailableError as exc:
            logger.warning("Store unavailable for read: %s", exc)
            raise SystemFailure() from exc

    async def _with_fresh_references(self, run: Callable[[], Awaitable[T]]) -> T:
        """Re-run a whole unit whose generated reference or ticket code collided"""
        attempts = self.settings.TICKET_CODE_ATTEMPTS
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                return await run()
            except ReferenceCollisionError as exc:
                last_error = exc
                logger.warning("Generated reference collided (attempt %s/%s): %s", attempt, attempts, exc)
        raise SystemFailure() from last_error
