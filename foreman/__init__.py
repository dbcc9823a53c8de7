"""
Foreman — Sub-agent Process Supervisor

Spawns external worker agents for long-running tasks, keeps them within a
concurrency ceiling, records everything they print, and hands back structured
results either on demand or by blocking until they finish.

Layers (bottom to top):
    1. Configuration (environment-derived, read once)
    2. Orchestration core (registry, governor, process control, results)
    3. Tool surface (spawn_agent / manage_agent)
    4. Command line
"""

__version__ = "0.1.0"
