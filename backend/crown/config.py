from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "crown-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "Crown")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/crown_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    # Hosted auth/db/storage provider
    supabase_url: str = os.getenv("SUPABASE_URL", "http://localhost:54321")
    supabase_anon_key: str = os.getenv("SUPABASE_ANON_KEY", "")
    supabase_jwt_secret: str = os.getenv("SUPABASE_JWT_SECRET", "dev-secret-change-me")
    supabase_jwt_audience: str = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")

    # External leaderboard/TikTok backend
    backend_url: str = os.getenv("CROWN_BACKEND_URL", "http://localhost:3001")
    backend_timeout_seconds: float = float(os.getenv("CROWN_BACKEND_TIMEOUT_SECONDS", "15"))
    leaderboard_timeout_seconds: float = float(os.getenv("LEADERBOARD_TIMEOUT_SECONDS", "5"))

    # S3-compatible storage (buckets mirror the provider's)
    s3_endpoint: str = os.getenv("S3_ENDPOINT", "http://minio:9000")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "minioadmin")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "minioadmin")
    s3_public_base_url: str = os.getenv("S3_PUBLIC_BASE_URL", "http://localhost:9000")
    bucket_thumbnails: str = os.getenv("S3_BUCKET_THUMBNAILS", "thumbnails")
    bucket_videos: str = os.getenv("S3_BUCKET_VIDEOS", "videos")
    bucket_covers: str = os.getenv("S3_BUCKET_COVERS", "leaderboard-images")

    # Session policy
    session_max_age_days: int = int(os.getenv("SESSION_MAX_AGE_DAYS", "7"))
    session_warning_after_days: int = int(os.getenv("SESSION_WARNING_AFTER_DAYS", "6"))
    session_check_seconds: float = float(os.getenv("SESSION_CHECK_SECONDS", "60"))
    session_warning_check_seconds: float = float(os.getenv("SESSION_WARNING_CHECK_SECONDS", "3600"))

    # Coordination timings
    tiktok_refresh_debounce_seconds: float = float(os.getenv("TIKTOK_REFRESH_DEBOUNCE_SECONDS", "5"))
    leaderboard_poll_seconds: float = float(os.getenv("LEADERBOARD_POLL_SECONDS", "30"))
    leaderboard_default_limit: int = int(os.getenv("LEADERBOARD_DEFAULT_LIMIT", "100"))
    oauth_poll_seconds: float = float(os.getenv("OAUTH_POLL_SECONDS", "1"))
    oauth_timeout_seconds: float = float(os.getenv("OAUTH_TIMEOUT_SECONDS", "300"))
    oauth_logout_grace_seconds: float = float(os.getenv("OAUTH_LOGOUT_GRACE_SECONDS", "10"))
    video_max_age_seconds: int = int(os.getenv("VIDEO_MAX_AGE_SECONDS", "86400"))
    min_active_videos: int = int(os.getenv("MIN_ACTIVE_VIDEOS", "3"))

settings = Settings()
