"""
Conversational layer between the engine and a UI.

This package contains:
- events: publish/subscribe channel for interview signals
- widgets: closed mapping from question kind to answer renderer
"""
