"""Runtime settings for agents and the workflow engine.

All values are read from environment variables with defaults matching the
documented engine behaviour. Import from here instead of hardcoding.
"""

from __future__ import annotations

import os


def _int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _str(key: str, default: str) -> str:
    return os.getenv(key, default)


# =====================================================================
# Agents
# =====================================================================

# Agent id a task node falls back to when its config names none
AGENT_DEFAULT_ID = _str("AGENT_DEFAULT_ID", "default")

# Queue concurrency for agents whose capabilities do not set one
AGENT_MAX_CONCURRENT_TASKS = _int("AGENT_MAX_CONCURRENT_TASKS", 1)

# Concurrency of the orchestrator's delegation queue
ORCHESTRATOR_DISTRIBUTION_CONCURRENCY = _int("ORCHESTRATOR_DISTRIBUTION_CONCURRENCY", 5)


# =====================================================================
# Workflow engine
# =====================================================================

# Node retry backoff (milliseconds): min(base * multiplier ** attempt, max)
RETRY_BACKOFF_MS = _float("RETRY_BACKOFF_MS", 1000.0)
RETRY_BACKOFF_MULTIPLIER = _float("RETRY_BACKOFF_MULTIPLIER", 2.0)
RETRY_MAX_BACKOFF_MS = _float("RETRY_MAX_BACKOFF_MS", 30000.0)

# Hard cap on loop node iterations
LOOP_MAX_ITERATIONS = _int("LOOP_MAX_ITERATIONS", 1000)


# =====================================================================
# Logging
# =====================================================================

LOG_LEVEL = _str("LOG_LEVEL", "INFO")
