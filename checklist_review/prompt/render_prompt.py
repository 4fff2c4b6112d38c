"""Render prompt templates in checklist_review/prompt/promptFiles using pystache.

Templates reference shared partials (``{{> comment_format}}``); partial files
may be wrapped in a code fence, which is stripped before rendering. Values are
inserted verbatim: documents and checklist text must reach the model without
HTML escaping.

Usage:
    python -m checklist_review.prompt.render_prompt [template_filename] [context.json]
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pystache

PROMPTS_DIR = Path(__file__).parent / "promptFiles"

PARTIALS = ("comment_format", "evaluation_instructions")


def _read_prompt(name: str) -> str:
    p = PROMPTS_DIR / name
    if not p.exists():
        raise FileNotFoundError(f"Prompt file not found: {p}")
    return p.read_text(encoding="utf-8")


def _strip_code_fences(s: str) -> str:
    """Strip a single leading and trailing code-fence line if present."""
    lines = s.splitlines()
    if not lines:
        return s
    if lines[0].lstrip().startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].lstrip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def _renderer() -> pystache.Renderer:
    partials = {name: _strip_code_fences(_read_prompt(f"{name}.md")) for name in PARTIALS}
    return pystache.Renderer(partials=partials, escape=lambda u: u)


def render_template(template_name: str, context: dict | None = None) -> str:
    return _renderer().render(_read_prompt(template_name), context or {}).strip()


def render_prompts(
    system_template: str,
    user_template: str,
    context: dict | None = None,
) -> tuple[str, str]:
    """Render a system and user prompt pair from two separate templates.

    Returns:
        (system_prompt, user_prompt)
    """
    renderer = _renderer()
    rendered_system = renderer.render(_read_prompt(system_template), context or {})
    rendered_user = renderer.render(_read_prompt(user_template), context or {})
    return rendered_system.strip(), rendered_user.strip()


def _load_context(path: str) -> dict:
    return json.loads(Path(path).read_text(encoding="utf-8"))


if __name__ == "__main__":
    tpl = sys.argv[1] if len(sys.argv) > 1 else "review_execution.md"
    ctx = None
    if len(sys.argv) > 2:
        ctx = _load_context(sys.argv[2])
    print(render_template(tpl, ctx))
