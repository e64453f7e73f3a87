"""Prompt templates shipped as text files next to the package."""

from __future__ import annotations

import functools
from pathlib import Path

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


@functools.cache
def load_prompt(name: str) -> str:
    """Read ``prompts/<name>.txt`` once; templates never change at runtime."""
    return (PROMPTS_DIR / f"{name}.txt").read_text(encoding="utf-8").strip()


def render_prompt(name: str, **values: str) -> str:
    """Fill ``{placeholders}`` in a template. Literal braces are written ``{{ }}``."""
    return load_prompt(name).format(**values)
