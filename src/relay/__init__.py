"""Chat relay: stateless proxy between a browser chat UI and LLM providers."""

__version__ = "1.0.0"
