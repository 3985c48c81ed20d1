"""
Tuiporal - Terminal User Interface for Temporal workflow executions.

Architecture:
- providers.py: Snapshot types and the WorkflowService protocol
- profiles.py / config.py: Connection profiles and their on-disk form
- client.py: Remote client facade over temporalio
- session.py: Single-writer core (view state, polling, commands)
- views/: Textual screen/widget components
- app.py: Main application entry point

Extensibility points:
1. New views: Add to views/, register in app.py
2. New data sources: Implement the WorkflowService protocol
3. New commands: Add a variant in commands.py and a branch in its handler
"""

__version__ = "0.3.0"
