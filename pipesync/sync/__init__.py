"""Reconciliation engine that keeps the pipeline moving by polling.

This package provides the primitives for:
- Snapshot store: the last committed observed state
- Differ: field-level deltas between current and cached state
- Classifier and resolver: urgency tiers and workflow actions per delta
- Executor: handler dispatch with retry and per-item failure isolation
- Loop and scheduler: non-overlapping read-diff-execute-commit passes
"""
