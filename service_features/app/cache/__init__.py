"""
Caching for stored feature policies.

Caching belongs to the policy store collaborator, never to evaluation: the
cache wraps a repository and exposes the same ``load_policies`` contract.
"""
