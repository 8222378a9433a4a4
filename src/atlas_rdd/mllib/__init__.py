# src/atlas_rdd/mllib/__init__.py
"""Objetos de valor numéricos usados nas agregações (vetores)."""

from .vector import DenseVector, SparseVector, Vector

__all__ = ["DenseVector", "SparseVector", "Vector"]
