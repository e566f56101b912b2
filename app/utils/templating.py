from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.utils.dates import day_count, format_display

TEMPLATES_DIR = Path(__file__).resolve().parent.parent.parent / "templates"


@lru_cache(maxsize=1)
def _get_env() -> Environment:
    loader = FileSystemLoader(str(TEMPLATES_DIR))
    env = Environment(loader=loader, autoescape=select_autoescape(["html", "xml"]))
    env.filters["display_date"] = format_display
    env.globals["day_count"] = day_count
    return env


def render_template(template_name: str, context: Dict[str, Any]) -> str:
    """Render ``template_name`` (relative to ``templates/``, e.g. ``email/welcome.html``)."""
    env = _get_env()
    template = env.get_template(template_name)
    return template.render(**context)
