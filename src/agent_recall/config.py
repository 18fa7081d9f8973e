"""
Configuration

Loads and manages runtime configuration from agent_config.yaml,
with environment variable overrides.
"""

import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env file if it exists
env_path = Path.cwd() / "setting" / ".env"
if env_path.exists():
    load_dotenv(env_path)


class DatabaseConfig(BaseModel):
    """Database connection configuration."""
    host: str = "localhost"
    port: int = 5432
    name: str = "agent_recall"
    user: Optional[str] = None
    password: Optional[str] = None
    min_pool_size: int = 2
    max_pool_size: int = 10

    @property
    def connection_string(self) -> str:
        """Generate PostgreSQL connection string."""
        if self.user and self.password:
            return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"
        return f"postgresql://{self.host}:{self.port}/{self.name}"


class EmbeddingConfig(BaseModel):
    """Embedding model configuration."""
    model: str = "text-embedding-3-large"
    dimension: int = 3072
    api_key: Optional[str] = None
    enable_cache: bool = True
    max_cache_size: int = 1000


class LLMConfig(BaseModel):
    """
    LLM configuration.

    - small_model: classification and evaluator selection
    - model: default model for everything else
    - large_model: message responses
    """
    model: str = "gpt-4o-mini"
    small_model: Optional[str] = None
    large_model: Optional[str] = None

    api_key: Optional[str] = None
    base_url: Optional[str] = None

    # Attempts for schema-validated object generation
    max_retries: int = 3
    temperature: float = 0.7

    def get_small_model(self) -> str:
        return self.small_model or self.model

    def get_large_model(self) -> str:
        return self.large_model or self.model


class RAGConfig(BaseModel):
    """Knowledge retrieval configuration."""
    match_threshold: float = Field(default=0.85, ge=0.0)
    match_count: int = Field(default=5, ge=1)
    chunk_size: int = Field(default=512, ge=1)
    chunk_overlap: int = Field(default=20, ge=0)
    # Root directory that character knowledge file paths are relative to
    knowledge_root: str = "characters/knowledge"


class QueueConfig(BaseModel):
    """Outbound request queue configuration."""
    timeout_seconds: float = 45.0
    delay_min_seconds: float = 1.5
    delay_range_seconds: float = 2.0
    backoff_base_seconds: float = 1.0
    max_attempts: Optional[int] = None


class RuntimeConfig(BaseModel):
    """State composition limits."""
    conversation_length: int = 32
    lore_count: int = 3
    topics_count: int = 5
    post_examples_count: int = 20
    message_examples_count: int = 5
    recent_interactions_limit: int = 20
    # Seconds before the newest attachment-bearing message whose attachments stay visible
    attachment_window_seconds: int = 3600


class AgentConfig(BaseModel):
    """Main configuration model."""
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    rag: RAGConfig = Field(default_factory=RAGConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    log_level: str = "INFO"
    settings: dict = Field(
        default_factory=dict,
        description="Free-form settings exposed through AgentRuntime.get_setting()",
    )


def _parse_database_url(db_url: str) -> dict:
    parsed = urlparse(db_url)
    database = {}
    if parsed.hostname:
        database["host"] = parsed.hostname
    if parsed.port:
        database["port"] = parsed.port
    if parsed.path and parsed.path != "/":
        database["name"] = parsed.path.lstrip("/")
    if parsed.username:
        database["user"] = parsed.username
    if parsed.password:
        database["password"] = parsed.password
    return database


def load_config(config_path: Optional[Path] = None) -> AgentConfig:
    """
    Load configuration from YAML file.

    Falls back to environment variables and defaults.
    """
    if config_path is None:
        config_path = Path.cwd() / "config" / "agent_config.yaml"

    config_data = {}

    if config_path.exists():
        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

    # Override with environment variables
    if os.getenv("OPENAI_API_KEY"):
        config_data.setdefault("llm", {})["api_key"] = os.getenv("OPENAI_API_KEY")
        config_data.setdefault("embedding", {}).setdefault("api_key", os.getenv("OPENAI_API_KEY"))

    if os.getenv("DATABASE_URL"):
        db_url = os.getenv("DATABASE_URL")
        if db_url.startswith(("postgresql://", "postgres://")):
            config_data.setdefault("database", {}).update(_parse_database_url(db_url))

    if os.getenv("DEFAULT_RAG_MATCH_THRESHOLD"):
        config_data.setdefault("rag", {})["match_threshold"] = float(os.getenv("DEFAULT_RAG_MATCH_THRESHOLD"))

    if os.getenv("DEFAULT_RAG_MATCH_COUNT"):
        config_data.setdefault("rag", {})["match_count"] = int(os.getenv("DEFAULT_RAG_MATCH_COUNT"))

    if os.getenv("LOG_LEVEL"):
        config_data["log_level"] = os.getenv("LOG_LEVEL")

    return AgentConfig(**config_data)
