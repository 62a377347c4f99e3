from cherrypick.adapters.base import QueryGateway, RawColumn, RawRow
from cherrypick.adapters.postgresql import PostgreSQLGateway

__all__ = [
    "QueryGateway",
    "RawColumn",
    "RawRow",
    "PostgreSQLGateway",
]
