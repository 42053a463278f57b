"""Service layer: scoring, engagement, spam detection, feed assembly and ingestion."""
