"""
Memory module - local-first persisted facts with embeddings.

Layers:
- binary: Versioned on-disk layout (load/save/migrate)
- lock: FIFO write lock serializing mutations
- cache: Hydrated in-process mirror, CRUD + similarity search

Storage: single binary file, rewritten whole on every mutation
"""
