"""Short-form ad video ingestion and processing service."""
