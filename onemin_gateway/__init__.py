"""
1min Gateway

OpenAI/Anthropic compatible API gateway for 1min.ai.
"""

__version__ = "0.1.0"
