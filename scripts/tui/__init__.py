"""
DevFlow TUI - Terminal User Interface for feature workflow monitoring.

Architecture:
- providers.py: Snapshot dataclasses and the provider protocol
- state_provider.py: Provider reading .devflow/ from disk
- views/: Textual screen/widget components
- app.py: Main application entry point
"""
