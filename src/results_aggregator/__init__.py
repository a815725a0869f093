"""
Top-level package for the results aggregator.

Storage for the latest health report of every managed cluster lives under
`results_aggregator.storage`.
"""

__all__: list[str] = []
