"""ACP Client - interactive terminal client for ACP agent servers."""

__version__ = "0.1.0"
