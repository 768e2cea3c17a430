"""
Wiring of a PipelineService from configuration.

Builds the Supabase-backed store and artifact storage, the provider client
of the selected pipeline and the pipeline itself.
"""

from dataclasses import replace

from supabase import create_client

from core.errors import ConfigurationError
from wardrobe_pipeline.config import ATTRIBUTE_DETECTION, IMAGE_CLEANUP, PipelineConfig
from wardrobe_pipeline.jobs.service import PipelineService
from wardrobe_pipeline.pipelines import (
    ATTRIBUTE_DETECTION_LAYOUT,
    IMAGE_CLEANUP_LAYOUT,
    AttributeDetectionPipeline,
    ImageCleanupPipeline,
    PillowImageProcessor,
)
from wardrobe_pipeline.providers import OpenAIVisionClient, ReplicateBackgroundRemover
from wardrobe_pipeline.storage.supabase_storage import SupabaseArtifactStore
from wardrobe_pipeline.store.supabase_store import SupabaseWorkItemStore


def create_service(config: PipelineConfig) -> PipelineService:
    """
    Build the service for config.pipeline.

    Raises:
        ConfigurationError: Invalid configuration or missing credentials
    """
    config.validate(require_credentials=True)

    client = create_client(config.supabase_url, config.supabase_service_key)
    store = SupabaseWorkItemStore(client)
    artifacts = SupabaseArtifactStore(client, bucket=config.storage_bucket)

    if config.pipeline == IMAGE_CLEANUP:
        remover = ReplicateBackgroundRemover(
            api_token=config.replicate_api_token,
            model_version=config.replicate_model_version,
            timeout_ms=config.provider_timeout_ms,
            poll_interval_ms=config.replicate_poll_interval_ms,
        )
        pipeline = ImageCleanupPipeline(
            artifacts,
            remover,
            processor=PillowImageProcessor(
                clean_max_dimension=config.clean_max_dimension,
                thumbnail_size=config.thumbnail_size,
            ),
            layout=replace(
                IMAGE_CLEANUP_LAYOUT,
                items_table=config.items_table,
                jobs_table=config.jobs_table,
                job_source_column=config.job_source_column,
            ),
        )
        return PipelineService(config, store, pipeline, resources=[remover])

    if config.pipeline == ATTRIBUTE_DETECTION:
        vision = OpenAIVisionClient(
            api_key=config.openai_api_key,
            model=config.openai_model,
            timeout_ms=config.provider_timeout_ms,
            base_url=config.openai_base_url,
        )
        pipeline = AttributeDetectionPipeline(
            artifacts,
            vision,
            signed_url_expiry_seconds=config.signed_url_expiry_seconds,
            layout=replace(
                ATTRIBUTE_DETECTION_LAYOUT,
                items_table=config.items_table,
                jobs_table=config.jobs_table,
                job_source_column=config.job_source_column,
            ),
        )
        return PipelineService(config, store, pipeline, resources=[vision])

    raise ConfigurationError(f"Unknown pipeline '{config.pipeline}'")
