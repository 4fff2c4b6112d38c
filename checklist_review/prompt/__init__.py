"""Mustache prompt templates for the review engine."""

from .render_prompt import render_prompts, render_template

__all__ = ["render_prompts", "render_template"]
