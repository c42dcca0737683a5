"""
CI Matrix - build/test fan-out orchestration for a multi-platform browser engine.

This package provides tools for:
- Resolving an effective run configuration from the trigger context
- Fanning out per-platform build jobs and sharded WPT jobs
- Running the jobs in parallel with a write-once artifact store
- Reducing every job outcome to a single pass/fail signal
"""

__version__ = "1.0.0"
