"""gitgrip - multi-repository workflow orchestrator."""

__version__ = "0.1.0"
