"""Deployment pipeline: workspace, fetch, overlay, report and orchestration.

Submodules are imported directly (e.g. `from pipeline.orchestrator import
Orchestrator`); manifest.py depends on pipeline.errors, so this package
imports nothing eagerly.
"""
