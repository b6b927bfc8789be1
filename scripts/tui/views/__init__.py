"""Textual screens and widgets for the DevFlow dashboard."""
