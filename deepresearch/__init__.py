"""
DeepResearch - Multi-Agent Research Assistant
=============================================

A research agent that plans, delegates sub-questions to isolated research
sub-agents, writes a report into a virtual workspace and asks a critique
sub-agent to review it.

This package provides:
- Agent orchestration core (reasoning loop, interceptors, hooks)
- Sub-agent dispatcher for isolated, parallel child runs
- Conversation store with token accounting and checkpointing
- Web search tool and the research/critique prompts
"""

__version__ = "1.0.0"
