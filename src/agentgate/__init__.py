"""agentgate: runtime for declarative agent personas."""

__version__ = "1.0.0"
