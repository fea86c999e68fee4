"""PingAI: reachability and capability probes for LLM provider endpoints."""

__version__ = "0.1.0"
