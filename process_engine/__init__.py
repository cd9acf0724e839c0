"""
Process Orchestration Engine

Template-driven business process engine: directed node graphs, human and
service tasks, and a queue-driven processor that advances each instance one
transition at a time.
"""

__version__ = "1.0.0"
