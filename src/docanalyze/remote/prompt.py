"""Jinja2-based prompt rendering for document tasks."""

from __future__ import annotations

from jinja2 import ChainableUndefined
from jinja2.sandbox import SandboxedEnvironment

from docanalyze.types import DocumentTask

DEFAULT_TEMPLATE = """\
Analyze the following document{% if task.chunk_count %} (part {{ task.chunk_index + 1 }} \
of {{ task.chunk_count }}){% endif %}: {{ task.name }}

Extract the summary, key requirements, risks, timeline, stakeholders,
technical stack, constraints and opportunities.

---
{{ task.content }}
"""

_jinja_env = SandboxedEnvironment(
    autoescape=False,
    keep_trailing_newline=True,
    undefined=ChainableUndefined,
)


def build_prompt(task: DocumentTask, template: str = DEFAULT_TEMPLATE) -> str:
    """Render the analysis prompt for one task."""
    return _jinja_env.from_string(template).render(task=task)


def make_prompt_builder(template: str = DEFAULT_TEMPLATE):
    """Return a ``task -> prompt`` callable bound to one template."""
    compiled = _jinja_env.from_string(template)

    def _build(task: DocumentTask) -> str:
        return compiled.render(task=task)

    return _build
