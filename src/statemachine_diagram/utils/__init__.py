"""Utility modules for the diagram builders and renderer."""

from .tokens import action_token, condition_token, parse_guard, split_actions

__all__ = ['action_token', 'condition_token', 'parse_guard', 'split_actions']
