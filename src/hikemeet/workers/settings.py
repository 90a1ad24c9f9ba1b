"""arq worker settings module.

Import path for arq CLI: arq hikemeet.workers.settings.WorkerSettings
"""

from __future__ import annotations

from hikemeet.workers.sweep_worker import WorkerSettings

__all__ = ["WorkerSettings"]
