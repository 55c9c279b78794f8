"""
Mnemos - local-first memory store for an AI assistant.

Package structure:
- core: Config, logging, shared types
- memory: Binary store, write lock, in-process cache
- llm: Embedding provider abstraction
- sync: Durable sync queue and reconciliation
- remote: Remote document store clients (Notion)
"""

__version__ = "0.1.0"
