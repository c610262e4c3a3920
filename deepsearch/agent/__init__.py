"""Agent orchestration loop."""
