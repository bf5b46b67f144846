"""
wpmigrate: resumable WordPress multisite migrations between environments.

The orchestration engine behind environment-to-environment migrations:
durable per-run state with crash recovery, and a systemic failure
detector that decides whether a run should keep going.
"""

__version__ = "0.3.0"
