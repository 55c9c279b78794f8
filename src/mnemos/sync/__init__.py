"""
Sync module - eventual consistency with the remote store.

Components:
- state: SyncState holder and subscriptions
- queue: Durable outbox drained by a background worker
- orchestrator: Full bidirectional reconciliation pass
"""
