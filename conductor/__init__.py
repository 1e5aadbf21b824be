"""
Conductor - Planner-driven multi-agent orchestration.

This package provides a bounded orchestration loop in which an orchestrator
agent repeatedly plans one action at a time, delegating work to other agents,
coordinating through markdown artifacts, and recording a replayable run trace.
"""

__version__ = "0.1.0"
