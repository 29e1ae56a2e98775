import os

# Keep a developer's .env or shell settings from leaking into tests
for _var in (
    "SYNC_TIMEOUT",
    "DRY_RUN",
    "SKIP_CONFIRM",
    "GITOPS_NAMESPACE",
    "STAGESYNC_BACKEND",
    "STAGESYNC_CLI",
    "STAGESYNC_REGISTRY",
    "STAGESYNC_FAIL_FAST",
):
    os.environ.pop(_var, None)

from tests.fixtures import *  # noqa: F401,F403,E402
