"""LLM adapters."""

from digest_curator.adapters.llm.claude_client import ClaudeClient

__all__ = ["ClaudeClient"]
