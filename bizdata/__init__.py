"""
bizdata: query and aggregation layer over an embedded SQLite database or a
remote PostgREST gateway.
"""

__version__ = "0.1.0"
