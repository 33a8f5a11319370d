"""
Entitlement context assembly.

- assembler: Loads identity and policies, evaluates every feature and always
  returns a complete, serializable ``EntitlementContext``.
- collaborators: Protocols for the policy store, identity provider, billing
  lookup and access logger, plus the structlog-backed access logger.
- subscription: Subscription liveness from billing records.
"""
