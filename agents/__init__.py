"""LLM-backed agents for the relay news digest pipeline.

EnrichmentAgent:
    Tech-relevance analysis via a chat-completion endpoint, with a local
    keyword classifier as fallback. Feeds the ranking boost.

SummarizerAgent:
    PydanticAI agent that polishes the rule-based digest summary.

Example:
    >>> from agents import EnrichmentAgent, SummarizerAgent
    >>> enricher = EnrichmentAgent(config)
    >>> summarizer = SummarizerAgent(config)
"""

from agents.enricher import EnrichmentAgent, EnrichmentError, fallback_analysis
from agents.summarizer import SummarizerAgent

__all__ = [
    "EnrichmentAgent",
    "EnrichmentError",
    "SummarizerAgent",
    "fallback_analysis",
]
