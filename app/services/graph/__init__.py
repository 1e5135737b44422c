"""Graph domain service package (Neo4j-backed storage for crawled events)."""
from .events import CONSTRAINTS, Neo4jEventStore, ensure_constraints

__all__ = [
    'CONSTRAINTS', 'Neo4jEventStore', 'ensure_constraints',
]
