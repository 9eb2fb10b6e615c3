"""ctxgraph command line interface."""
