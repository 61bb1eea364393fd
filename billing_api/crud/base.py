from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union, Tuple
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_
from billing_api.models.base import Base
from billing_api.core.exceptions import NotFoundError

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


def _to_data(obj_in: Any) -> Dict[str, Any]:
    # model_dump() preserves Python types (datetime, Decimal, UUID)
    if isinstance(obj_in, dict):
        return dict(obj_in)
    if hasattr(obj_in, 'model_dump'):
        return obj_in.model_dump(exclude_unset=True)
    return jsonable_encoder(obj_in)


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def _conditions(self, filters: Optional[Dict[str, Any]]) -> List[Any]:
        conditions = []
        for field, value in (filters or {}).items():
            if not hasattr(self.model, field):
                raise ValueError(f"Field '{field}' does not exist on model {self.model.__name__}")
            column = getattr(self.model, field)
            if isinstance(value, (list, tuple)):
                conditions.append(column.in_(value))
            else:
                conditions.append(column == value)
        return conditions

    async def get(self, db: AsyncSession, id: Any, *, raise_if_not_found: bool = True) -> Optional[ModelType]:
        """Get a single record by ID"""
        result = await db.execute(select(self.model).where(self.model.id == id))
        obj = result.scalar_one_or_none()

        if raise_if_not_found and obj is None:
            raise NotFoundError(f"{self.model.__name__}")

        return obj

    async def get_multi(
        self,
        db: AsyncSession,
        *,
        skip: int = 0,
        limit: int = 100,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        order_desc: bool = True
    ) -> Tuple[List[ModelType], int]:
        """Get multiple records with pagination and filtering"""
        query = select(self.model)
        conditions = self._conditions(filters)
        if conditions:
            query = query.where(and_(*conditions))

        # Get total count for pagination
        count_query = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_query)).scalar()

        # Apply ordering, default created_at desc
        order_field = getattr(self.model, order_by) if order_by and hasattr(self.model, order_by) else self.model.created_at
        query = query.order_by(order_field.desc() if order_desc else order_field.asc())

        query = query.offset(skip).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all()), total

    async def get_latest(
        self,
        db: AsyncSession,
        *,
        filters: Dict[str, Any]
    ) -> Optional[ModelType]:
        """Most recently created record matching all filters"""
        query = (
            select(self.model)
            .where(and_(*self._conditions(filters)))
            .order_by(self.model.created_at.desc())
            .limit(1)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def create(self, db: AsyncSession, *, obj_in: Union[CreateSchemaType, Dict[str, Any]]) -> ModelType:
        """Create a new record"""
        db_obj = self.model(**_to_data(obj_in))
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, Dict[str, Any]]
    ) -> ModelType:
        """Update a record"""
        for field, value in _to_data(obj_in).items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)

        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def count(self, db: AsyncSession, *, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records with optional filters"""
        query = select(func.count()).select_from(self.model)
        conditions = self._conditions(filters)
        if conditions:
            query = query.where(and_(*conditions))
        result = await db.execute(query)
        return result.scalar()
