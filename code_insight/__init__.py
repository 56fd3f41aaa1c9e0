"""
code-insight: static analysis of JavaScript/TypeScript projects.
"""

__version__ = "0.1.0"
