"""
telemetry_core: Host telemetry sampling for the AssetWatch backend.

Submodules:
- domains: telemetry domain names, sampled fields, create/merge rules.
- host: dedicated thread pool for host calls that spawn OS processes.
- samplers: psutil/platform/HTTP samplers, one per domain.
- scheduler: repeating per-domain sampling timers.

Nothing here touches the database; app.reconciler persists what these
modules produce.
"""

__all__ = [
    "domains",
    "host",
    "samplers",
    "scheduler",
]
