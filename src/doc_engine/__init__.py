"""
Document Engine - Embeddable Document-Store Query Engine

An in-process query engine for a single collection of catalog records,
with filtered lookup, projection, sorting, pagination, grouped aggregation
and index-accelerated query planning with explain statistics.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
