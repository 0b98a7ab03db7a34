from collector.fetch.memory import InMemoryResourceFetcher
from collector.fetch.resources import DefaultResourceFetcher, is_local_ref, is_remote

__all__ = [
    "DefaultResourceFetcher",
    "InMemoryResourceFetcher",
    "is_local_ref",
    "is_remote",
]
