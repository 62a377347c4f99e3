from cherrypick.output.dot import GraphDescriptionGenerator
from cherrypick.output.sql import InsertStatementGenerator

__all__ = [
    "InsertStatementGenerator",
    "GraphDescriptionGenerator",
]
