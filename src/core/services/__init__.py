"""Orchestration services.

Zone resolution, batch execution, cache-tag collection and the purge / KV
pipelines built on top of them. No printing happens here; UI layers plug in
through `PipelineHooks`.
"""
