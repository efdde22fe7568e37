"""Kaap: multi-provider LLM chat gateway.

Routes chat turns to OpenAI, Google, Anthropic and DeepSeek models with
ordered fallback, multi-model comparison and client-side cost tracking.
"""

__version__ = "0.1.0"
