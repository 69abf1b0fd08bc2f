"""
Reporting Layer

Publishes resolved stack state. Contains:
- adapters: NATS publisher for node snapshots and exports
- api: FastAPI status service over a stack coordinator
"""
