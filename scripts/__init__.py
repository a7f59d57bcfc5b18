"""Helper utilities for CLI entry points.

This makes the ``scripts`` directory importable in unit tests that drive the
pipeline wrappers (e.g., scripts.pipelines.predict_m3f_dyads).
"""
