"""
PDCA Kernel - goal workflow engine

A Plan-Do-Check-Act goal workflow with:
- A fixed status transition table
- Phase gates that block progress while phase tasks are open
- Per-assignee completion tracking
- Append-only workflow history
- Optimistic concurrency on every goal write
"""

__version__ = "0.1.0"
