"""
Feature access service.

This package decides which monetized features an actor may use. It provides:

- app.rules: Policy model, tier mapping, rollout hashing and the evaluator.
- app.context: Fail-closed assembly of a serializable entitlement context.
- app.guards: Per-feature checks for transport layers (reason -> status).
- app.persistence: Policy storage (PostgreSQL, in-memory).
- app.cache: Redis read-through cache for stored policies.
- app.main: Composition root wiring configuration, storage and logging.

Guidelines:
- Evaluation is pure; all I/O happens in collaborators.
- Any failure resolves to the least-privileged outcome.
- Keep decisions deterministic and observable (metrics + logs).
"""
