# src/atlas_rdd/core/rdd/__init__.py
"""
Coleções particionadas do Atlas RDD.

Componentes:
    - lineage     → variante Root / Derived e o predicado `can_collapse`
    - collection  → `Collection` (transformações, ações, persistência)
    - shuffle     → `partition_by`, `stable_hash`, `PartitionFunctionRegistry`
    - aggregation → reduce / fold / aggregate / combine_by_key e derivados
"""

from .collection import Collection
from .lineage import Derived, Root, can_collapse
from .shuffle import PartitionFunctionRegistry, function_token, stable_hash

__all__ = [
    "Collection",
    "Derived",
    "PartitionFunctionRegistry",
    "Root",
    "can_collapse",
    "function_token",
    "stable_hash",
]
