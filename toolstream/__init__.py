"""
toolstream - streaming tool-orchestration proxy for OpenAI-compatible LLMs

This package provides:
- An orchestration engine that runs shell commands and light changes
  requested by the upstream model and streams summaries back
- An OpenAI-compatible FastAPI server
- Interactive CLI for testing
"""

__version__ = "0.1.0"
