"""
timesman storage core.

Personal record keeping: Times buckets holding Posts, Todos and Tags behind
a pluggable async storage backend (in-memory, embedded key-value file, or a
remote proxy talking to another process over WebSockets).
"""

__version__ = "0.3.0"
