"""
cherrypick - Copy one database row together with everything it is related to.

Starting from a single row, cherrypick follows foreign keys in both
directions, collects every related row, and writes them out as
dependency-ordered INSERT statements or as a Graphviz graph.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
