from typing import Generic, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

# Define a generic type for SQLAlchemy models
ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    """Base repository bound to one model and the caller's session.

    Repositories never commit. Transaction boundaries belong to the
    service layer so a resolution or merge is persisted all-or-nothing.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model

    async def create(self, **kwargs) -> ModelType:
        """Add a new record and flush it so the generated ID is available.

        Args:
            **kwargs: Fields and values for the new record

        Returns:
            The created record
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        return instance
