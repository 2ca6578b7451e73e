"""Real-time infrastructure — in-process bus + Server-Sent Events.

Learn: Events flow through two hops:
1. Mutation routes → EventBus.emit (synchronous, in-process)
2. EventBus listener → SyncStream queue → SSE response (per connection)

The client side (RealtimeSyncClient) reads the stream back, reconnects
with backoff, and fans sync events out to per-entity subscribers.
"""
