"""
Policy storage backends.

Both backends implement ``load_policies() -> Dict[str, PolicyRecord]`` and
raise ``PolicyStoreUnavailable`` rather than returning partial results.
"""
