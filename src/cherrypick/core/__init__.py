from cherrypick.core.catalog import SchemaCatalog
from cherrypick.core.graph import CherryPickGraph, GraphBuilder
from cherrypick.core.engine import CherryPickEngine, CherryPickResult, cherry_pick

__all__ = [
    "CherryPickEngine",
    "CherryPickResult",
    "CherryPickGraph",
    "GraphBuilder",
    "SchemaCatalog",
    "cherry_pick",
]
