"""arq worker settings module.

Import path for arq CLI: arq stackit.workers.settings.WorkerSettings
"""

from __future__ import annotations

from stackit.workers.notification_worker import WorkerSettings

__all__ = ["WorkerSettings"]
