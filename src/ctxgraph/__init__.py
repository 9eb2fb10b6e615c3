"""ctxgraph — structured, incremental context for component codebases."""

__version__ = "0.1.0"
