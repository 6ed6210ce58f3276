__all__ = [
    "schemas",
    "query",
    "timeline",
    "logging_config",
    "storage_backend",
]
