"""
Configuration Management using Pydantic Settings
Loads configuration from environment variables with validation
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
    
    # Application
    app_name: str = Field(default="Work Package Asset Extraction", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment: development, staging, production")
    api_v1_prefix: str = Field(default="/api/v1", description="API version 1 prefix")
    
    # Database - PostgreSQL (Local Docker)
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_user: str = Field(default="workpack", description="PostgreSQL user")
    postgres_password: str = Field(default="workpack_secret", description="PostgreSQL password")
    postgres_db: str = Field(default="workpack", description="PostgreSQL database name")
    
    # Database - Cloud (Production)
    database_url: Optional[str] = Field(default=None, description="Full database URL (cloud)")
    db_pool_size: int = Field(default=5, description="Persistent connections in the job store pool")
    db_max_overflow: int = Field(default=5, description="Extra connections allowed under load")
    db_pool_timeout: int = Field(default=30, description="Seconds to wait for a pooled connection")
    db_pool_recycle: int = Field(default=1800, description="Recycle connections after this many seconds")
    
    @property
    def postgres_url_sync(self) -> str:
        """
        Construct synchronous PostgreSQL connection URL.
        Prioritizes DATABASE_URL (cloud) over individual settings (local).
        """
        if self.database_url:
            url = self.database_url
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql://", 1)
            url = url.replace("postgresql+asyncpg://", "postgresql://")
            # psycopg2 wants sslmode, not ssl
            if "ssl=require" in url:
                url = url.replace("ssl=require", "sslmode=require")
            return url
        
        return f"postgresql://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
    
    # Object storage (Supabase Storage)
    supabase_url: Optional[str] = Field(default=None, description="Supabase project URL")
    supabase_key: Optional[str] = Field(default=None, description="Supabase service key")
    supabase_storage_bucket: str = Field(default="work-packages", description="Storage bucket for extracted assets")
    
    # Local fallback storage
    uploads_dir: str = Field(default="uploads", description="Root directory for uploaded packages and local assets")
    local_asset_url_prefix: str = Field(default="/uploads", description="URL prefix for locally served assets")
    
    # Rasterization
    raster_scale: float = Field(default=2.0, description="Scale factor applied to the page's logical size")
    jpeg_quality: int = Field(default=85, ge=1, le=100, description="JPEG quality for rasterized pages")
    
    # Bounded selection per extraction run
    max_drawing_pages: int = Field(default=5, ge=0, description="Max drawing pages rasterized per run")
    max_map_pages: int = Field(default=3, ge=0, description="Max map pages rasterized per run")
    max_photo_pages: int = Field(default=15, ge=0, description="Max photo pages rasterized per run")
    
    # Classifier thresholds (tuned against one utility's packages; re-validate for other corpora)
    image_only_text_limit: int = Field(default=50, description="Below this text length an image page is image-only")
    image_heavy_text_limit: int = Field(default=150, description="Below this text length an image page is image-heavy")
    map_short_text_limit: int = Field(default=500, description="Max text length for the derived map heuristic")
    watermark_text_limit: int = Field(default=20, description="Max text length of a confidential-watermark-only page")
    
    # Crash recovery
    stale_extraction_minutes: int = Field(default=30, description="Age after which a started extraction is presumed crashed")
    
    # Upload handling / first-page preview
    max_upload_bytes: int = Field(default=100 * 1024 * 1024, description="Max accepted package size")
    preview_full_parse_max_bytes: int = Field(default=2 * 1024 * 1024, description="Above this size the preview uses the filename")
    preview_parse_timeout_seconds: float = Field(default=15.0, description="Deadline for the first-page preview parse")
    preview_max_chars: int = Field(default=3000, description="Max characters kept from the preview parse")
    
    # Job document tree
    asset_folder_path: list[str] = Field(
        default=["ACI", "Pre-Field Documents"],
        description="Folder path inside the job document tree that receives extracted assets",
    )
    cleanup_source_pdf: bool = Field(default=True, description="Delete the uploaded package after extraction")
    strip_photo_pages: bool = Field(default=True, description="Save a copy of the package without its extracted photo pages")
    package_folder_path: list[str] = Field(
        default=["ACI", "Field As Built"],
        description="Folder path inside the job document tree that receives the cleaned package",
    )
    
    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    
    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v
    
    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Export settings instance for convenience
settings = get_settings()
