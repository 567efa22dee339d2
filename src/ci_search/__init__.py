"""
Top-level package for the CI search indexing project.

The job indexer lives under `ci_search.job_indexer`; object-store adapters and
logging helpers shared by its entry points live at this level.
"""

__all__: list[str] = []
