"""Quality pipeline: stage registry, orchestration, aggregation and versioning."""
