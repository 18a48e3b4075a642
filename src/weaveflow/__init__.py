"""
Weaveflow - workflow graph engine for typed media/LLM processing nodes.

This package provides:
- GraphStore: node/edge collections kept as a DAG
- ValueResolver: pull-based propagation of values along edges
- ExecutorRegistry / NodeRunner: per-type run behaviour with retry
- RunLedger: execution history per owner
- WorkflowEngine: facade wiring the pieces together
"""

from weaveflow.engine import WorkflowEngine, create_engine

__all__ = ["WorkflowEngine", "create_engine"]

__version__ = "0.1.0"
