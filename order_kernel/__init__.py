"""
Order Kernel

Shared foundation for order ingestion and settlement:
- Declarative ORM base with UUID keys and audit columns
- Money types and the single sanctioned rounding function
- Client-keyed shard routing over N identical order tables
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with context propagation
"""

__version__ = "0.1.0"
