"""CLI command modules.

Commands:
- sync, sync-one, sync-configs: drive apps to Synced + Healthy
- status: Application and ApplicationSet tables
- autosync: enable/disable automated sync
- teardown, clean: destructive removal commands
"""

from .sync import autosync_app, status, sync, sync_configs, sync_one
from .teardown import clean, teardown

__all__ = [
    "sync",
    "sync_one",
    "sync_configs",
    "status",
    "autosync_app",
    "teardown",
    "clean",
]
