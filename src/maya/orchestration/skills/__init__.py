"""Skill execution."""

from .executor import SkillExecutor, SkillHandler

__all__ = [
    "SkillExecutor",
    "SkillHandler",
]
