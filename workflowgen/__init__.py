"""
Workflow generation and validation engine.
Turns orchestration plans into validated n8n automation graphs.
"""

__version__ = "1.0.0"
