"""Remote table clients for herd-sync."""

from herd_sync.remote.base import Filter, FilterOp, RemoteTableClient, TableQuery
from herd_sync.remote.memory_remote import InMemoryRemote
from herd_sync.remote.postgrest import PostgrestClient, build_query_params

__all__ = [
    "Filter",
    "FilterOp",
    "RemoteTableClient",
    "TableQuery",
    "InMemoryRemote",
    "PostgrestClient",
    "build_query_params",
]
