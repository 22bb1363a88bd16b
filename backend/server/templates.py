"""
Client script templates.

The in-game computers bootstrap with `wget run <url>`, so the server hands
out Lua scripts with the server address, screen id and peripheral side
filled in. Placeholders look like {{name}}; every occurrence is replaced.
Unknown placeholders are left untouched.
"""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path

_LUA_DIR = Path(__file__).with_name("lua")
_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


class TemplateNotFound(Exception):
    """No packaged script with that name."""


@lru_cache(maxsize=None)
def load_template(name: str) -> str:
    path = _LUA_DIR / name
    if path.parent != _LUA_DIR or not path.is_file():
        raise TemplateNotFound(name)
    return path.read_text(encoding="utf-8")


def substitute(template: str, values: dict[str, str]) -> str:
    return _PLACEHOLDER.sub(
        lambda m: values.get(m.group(1), m.group(0)),
        template,
    )


def render_template(name: str, **values: object) -> str:
    """
    Load `name` from the packaged lua/ directory and fill placeholders.
    """
    return substitute(load_template(name), {k: str(v) for k, v in values.items()})
