"""Infrastructure modules for the processing engine.

Centralized infrastructure components:
- configuration: Settings management (Settings, ProcessingSettings)
- logging: structlog setup and processing context binding
- idempotency: Processing records, stores and the coordinator
- resilience: Retry scheduling, the retry sweep and the dead-letter queue
- operations: Operation results and AWS error classification
- clients: AWS session and DynamoDB access
- audit: Audit events for operator actions
- services: Cached providers wiring the components together
"""
