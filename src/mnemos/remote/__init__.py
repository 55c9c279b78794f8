"""
Remote module - authoritative document store clients.

Stores:
- notion: Notion database over the REST API
"""
