"""
Developer-facing front ends.

This package contains:
- console: run one interview in the terminal
"""
