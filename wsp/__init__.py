"""wsp: multi-repository workspaces backed by local bare mirrors."""

__version__ = "0.1.0"
