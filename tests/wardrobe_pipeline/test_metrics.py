"""Tests for Prometheus metric helpers."""

from prometheus_client import REGISTRY

from wardrobe_pipeline.metrics import (
    record_claim_conflict,
    record_job_outcome,
    record_stale_recovery,
    update_batch_chunk_size,
)


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetrics:
    """Tests for the metric recording helpers."""

    def test_job_outcome(self):
        labels = {"pipeline": "metrics-test", "status": "failed", "error_category": "permanent"}
        before = sample("wardrobe_jobs_processed_total", **labels)
        count_before = sample("wardrobe_job_processing_duration_seconds_count",
                              pipeline="metrics-test")

        record_job_outcome("metrics-test", "failed", duration_seconds=0.3,
                           error_category="permanent")

        assert sample("wardrobe_jobs_processed_total", **labels) == before + 1
        assert sample("wardrobe_job_processing_duration_seconds_count",
                      pipeline="metrics-test") == count_before + 1

    def test_outcome_without_category(self):
        labels = {"pipeline": "metrics-test", "status": "skipped", "error_category": "none"}
        before = sample("wardrobe_jobs_processed_total", **labels)

        record_job_outcome("metrics-test", "skipped")

        assert sample("wardrobe_jobs_processed_total", **labels) == before + 1

    def test_stale_recovery_and_conflicts(self):
        before_retry = sample("wardrobe_stale_jobs_recovered_total",
                              pipeline="metrics-test", outcome="retry")
        before_conflict = sample("wardrobe_claim_conflicts_total",
                                 pipeline="metrics-test", target="job")

        record_stale_recovery("metrics-test", will_retry=True)
        record_claim_conflict("metrics-test", "job")

        assert sample("wardrobe_stale_jobs_recovered_total",
                      pipeline="metrics-test", outcome="retry") == before_retry + 1
        assert sample("wardrobe_claim_conflicts_total",
                      pipeline="metrics-test", target="job") == before_conflict + 1

    def test_chunk_size_gauge(self):
        update_batch_chunk_size("metrics-test", 4)
        assert sample("wardrobe_batch_chunk_size", pipeline="metrics-test") == 4

        update_batch_chunk_size("metrics-test", 0)
        assert sample("wardrobe_batch_chunk_size", pipeline="metrics-test") == 0
