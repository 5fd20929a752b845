from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, new_id


class DataSource(Base):
    """
    A connected provider account (GitHub, GitLab, Jira).

    Managed by the settings screens; the import pipeline only reads it,
    apart from stamping last_sync_at after an import.
    """
    __tablename__ = "data_sources"

    id = Column(String(36), primary_key=True, default=new_id)
    provider = Column(String(50), nullable=False, index=True)  # "github", "gitlab", "jira"
    name = Column(String(200), nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True, index=True)
    last_sync_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    configs = relationship("DataSourceConfig", back_populates="data_source", cascade="all, delete-orphan")
    runs = relationship("ImportRun", back_populates="data_source")

    def environment(self) -> dict:
        """Config rows as the key/value environment handed to importers."""
        return {config.key: config.value for config in self.configs}


class DataSourceConfig(Base):
    """Key/value configuration (tokens, org names, base URLs) of a data source."""
    __tablename__ = "data_source_configs"

    id = Column(String(36), primary_key=True, default=new_id)
    data_source_id = Column(String(36), ForeignKey("data_sources.id", ondelete="CASCADE"), nullable=False)
    key = Column(String(100), nullable=False)
    value = Column(Text, nullable=False)

    data_source = relationship("DataSource", back_populates="configs")

    __table_args__ = (
        Index("idx_data_source_config_key", "data_source_id", "key", unique=True),
    )


class Repository(Base):
    """Repository discovered through a data source; counted on the import overview."""
    __tablename__ = "repositories"

    id = Column(String(36), primary_key=True, default=new_id)
    data_source_id = Column(String(36), ForeignKey("data_sources.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(300), nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True, index=True)
