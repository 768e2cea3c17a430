"""Pipeline configuration from config.yaml and environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.errors import ConfigurationError
from wardrobe_pipeline.feature_flags import is_pipeline_enabled

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config.yaml"

IMAGE_CLEANUP = "image-cleanup"
ATTRIBUTE_DETECTION = "attribute-detection"
PIPELINES = (IMAGE_CLEANUP, ATTRIBUTE_DETECTION)

# Per-pipeline defaults that differ between the two functions
_PIPELINE_DEFAULTS: Dict[str, Dict[str, Any]] = {
    IMAGE_CLEANUP: {
        "provider_timeout_ms": 20000,
        "stale_threshold_ms": 600000,  # 10 minutes
        "jobs_table": "image_processing_jobs",
        "job_source_column": "original_key",
    },
    ATTRIBUTE_DETECTION: {
        "provider_timeout_ms": 15000,
        "stale_threshold_ms": 300000,  # 5 minutes
        "jobs_table": "attribute_detection_jobs",
        "job_source_column": "image_key",
    },
}


def _section_name(pipeline: str) -> str:
    return pipeline.replace("-", "_")


def _env_prefix(pipeline: str) -> str:
    return _section_name(pipeline).upper()


@dataclass
class PipelineConfig:
    """Background job pipeline configuration.

    Load using PipelineConfig.load_config(pipeline).
    All timing values in milliseconds unless otherwise noted.
    """

    pipeline: str = IMAGE_CLEANUP
    enabled: bool = False

    # Supabase
    supabase_url: str = ""
    supabase_service_key: str = ""
    storage_bucket: str = "wardrobe-items"
    items_table: str = "items"
    jobs_table: str = "image_processing_jobs"
    job_source_column: str = "original_key"

    # Job processing
    provider_timeout_ms: int = 20000
    retry_base_delay_ms: int = 1000
    retry_max_delay_ms: int = 60000
    stale_threshold_ms: int = 600000
    batch_size_cap: int = 10
    max_concurrency: int = 5
    max_attempts: int = 3

    # Background removal (image cleanup)
    replicate_api_token: str = ""
    replicate_model_version: str = (
        "fb8af171cfa1616ddcf1242c093f9c46bcada5ad4cf6f2fbe8b81b330ec5c003"
    )
    replicate_poll_interval_ms: int = 1000
    thumbnail_size: int = 200
    clean_max_dimension: int = 1600

    # Vision model (attribute detection)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com/v1"
    signed_url_expiry_seconds: int = 300

    def validate(self, require_credentials: bool = True) -> None:
        """Check value ranges and required credentials.

        Args:
            require_credentials: Also require Supabase and provider secrets

        Raises:
            ConfigurationError: If any value is invalid or missing
        """
        if self.pipeline not in PIPELINES:
            raise ConfigurationError(
                f"Unknown pipeline '{self.pipeline}', expected one of {PIPELINES}"
            )

        for name in (
            "provider_timeout_ms",
            "batch_size_cap",
            "max_concurrency",
            "max_attempts",
            "stale_threshold_ms",
        ):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {getattr(self, name)}")

        if self.retry_base_delay_ms < 0 or self.retry_max_delay_ms < 0:
            raise ConfigurationError("Retry delays must be non-negative")

        if not require_credentials:
            return

        missing = []
        if not self.supabase_url:
            missing.append("SUPABASE_URL")
        if not self.supabase_service_key:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
        if self.pipeline == IMAGE_CLEANUP and not self.replicate_api_token:
            missing.append("REPLICATE_API_TOKEN")
        if self.pipeline == ATTRIBUTE_DETECTION and not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )

    @classmethod
    def load_config(
        cls, pipeline: str, config_path: Optional[Path] = None
    ) -> "PipelineConfig":
        """Load pipeline configuration from config.yaml and environment variables.

        Configuration priority (highest to lowest):
        1. Environment variables
        2. config.yaml file (under 'supabase:' and the pipeline's section,
           e.g. 'image_cleanup:')
        3. Dataclass defaults

        Shared env vars:
            SUPABASE_URL: Project URL
            SUPABASE_SERVICE_ROLE_KEY: Service role key
            WARDROBE_STORAGE_BUCKET: Storage bucket (default: wardrobe-items)
            REPLICATE_API_TOKEN: Background removal credentials
            OPENAI_API_KEY: Vision model credentials
            OPENAI_MODEL: Vision model (default: gpt-4o)

        Per-pipeline env vars, prefixed IMAGE_CLEANUP_ or ATTRIBUTE_DETECTION_:
            PROVIDER_TIMEOUT_MS, RETRY_BASE_DELAY_MS, RETRY_MAX_DELAY_MS,
            STALE_THRESHOLD_MS, BATCH_SIZE_CAP, MAX_CONCURRENCY, MAX_ATTEMPTS

        Raises:
            ConfigurationError: If the pipeline name or a numeric value is invalid
        """
        if pipeline not in PIPELINES:
            raise ConfigurationError(
                f"Unknown pipeline '{pipeline}', expected one of {PIPELINES}"
            )

        config_path = config_path or DEFAULT_CONFIG_PATH

        yaml_data: Dict[str, Any] = {}
        if config_path.exists():
            with open(config_path, "r") as f:
                yaml_data = yaml.safe_load(f) or {}

        supabase_data: Dict[str, Any] = yaml_data.get("supabase", {}) or {}
        pipeline_data: Dict[str, Any] = yaml_data.get(_section_name(pipeline), {}) or {}

        merged: Dict[str, Any] = {**_PIPELINE_DEFAULTS[pipeline], **pipeline_data}

        prefix = _env_prefix(pipeline)

        def _int(key: str, default: int) -> int:
            raw = os.getenv(f"{prefix}_{key.upper()}", merged.get(key, default))
            try:
                return int(raw)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid integer for {key}: {raw!r}", cause=e
                ) from e

        def _str(env_var: str, key: str, source: Dict[str, Any], default: str) -> str:
            return os.getenv(env_var, str(source.get(key, default)))

        enabled = is_pipeline_enabled(pipeline, default=bool(merged.get("enabled", False)))

        return cls(
            pipeline=pipeline,
            enabled=enabled,
            supabase_url=_str("SUPABASE_URL", "url", supabase_data, ""),
            supabase_service_key=_str(
                "SUPABASE_SERVICE_ROLE_KEY", "service_key", supabase_data, ""
            ),
            storage_bucket=_str(
                "WARDROBE_STORAGE_BUCKET", "storage_bucket", supabase_data, cls.storage_bucket
            ),
            items_table=str(
                merged.get("items_table", supabase_data.get("items_table", cls.items_table))
            ),
            jobs_table=str(merged.get("jobs_table", cls.jobs_table)),
            job_source_column=str(
                merged.get("job_source_column", cls.job_source_column)
            ),
            provider_timeout_ms=_int("provider_timeout_ms", cls.provider_timeout_ms),
            retry_base_delay_ms=_int("retry_base_delay_ms", cls.retry_base_delay_ms),
            retry_max_delay_ms=_int("retry_max_delay_ms", cls.retry_max_delay_ms),
            stale_threshold_ms=_int("stale_threshold_ms", cls.stale_threshold_ms),
            batch_size_cap=_int("batch_size_cap", cls.batch_size_cap),
            max_concurrency=_int("max_concurrency", cls.max_concurrency),
            max_attempts=_int("max_attempts", cls.max_attempts),
            replicate_api_token=_str(
                "REPLICATE_API_TOKEN", "replicate_api_token", merged, ""
            ),
            replicate_model_version=_str(
                "REPLICATE_MODEL_VERSION",
                "replicate_model_version",
                merged,
                cls.replicate_model_version,
            ),
            replicate_poll_interval_ms=_int(
                "replicate_poll_interval_ms", cls.replicate_poll_interval_ms
            ),
            thumbnail_size=_int("thumbnail_size", cls.thumbnail_size),
            clean_max_dimension=_int("clean_max_dimension", cls.clean_max_dimension),
            openai_api_key=_str("OPENAI_API_KEY", "openai_api_key", merged, ""),
            openai_model=_str("OPENAI_MODEL", "openai_model", merged, cls.openai_model),
            openai_base_url=_str(
                "OPENAI_BASE_URL", "openai_base_url", merged, cls.openai_base_url
            ),
            signed_url_expiry_seconds=_int(
                "signed_url_expiry_seconds", cls.signed_url_expiry_seconds
            ),
        )
