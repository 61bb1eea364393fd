from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import JSONB
from .base import Base, TimestampMixin


class IntegrationConfig(Base, TimestampMixin):
    __tablename__ = "integration_configs"

    id = Column(String(100), primary_key=True)  # integration id: supabase, creem, ...
    config = Column(JSONB, nullable=False, default=dict)
