"""Configuration templating.

Templates contain ``{{NAME}}`` markers. Rendering is a single literal pass:
a marker is replaced by its binding if one exists and is otherwise left
verbatim, and substituted values are never scanned again. Leaving unknown
markers in place keeps partially-configured templates syntactically valid.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from .errors import TemplateNotFoundError
from .lib.files import atomic_write_text, backup_file

logger = logging.getLogger(__name__)

_MARKER = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}")

PACKAGE_TEMPLATES_DIR = Path(__file__).resolve().parent / "assets"


def substitute(text: str, bindings: Mapping[str, str]) -> str:
    def _replace(m: "re.Match[str]") -> str:
        name = m.group(1)
        if name in bindings:
            return str(bindings[name])
        return m.group(0)

    return _MARKER.sub(_replace, text)


@dataclass(frozen=True)
class TemplateRequest:
    template_path: str
    output_path: str
    bindings: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "bindings", MappingProxyType(dict(self.bindings)))


def render_template(
    template_path: str | Path,
    output_path: str | Path,
    bindings: Optional[Mapping[str, str]] = None,
    *,
    backup_dir: str | Path,
    well_known: Optional[Mapping[str, str]] = None,
    dry_run: bool = False,
) -> Optional[Path]:
    """Render ``template_path`` into ``output_path``.

    ``well_known`` carries the environment-derived bindings (ports, network
    settings); explicit ``bindings`` win over them. An existing output file
    is copied into ``backup_dir`` first. A failed backup is logged and the
    render continues.

    Returns the backup path, if one was made.
    """

    request = TemplateRequest(str(template_path), str(output_path), bindings or {})
    src = Path(request.template_path)
    out = Path(request.output_path)

    if not src.is_file():
        logger.error("Template file not found: %s", src)
        raise TemplateNotFoundError(str(src))

    merged = {k: v for k, v in (well_known or {}).items() if v not in (None, "")}
    merged.update(request.bindings)

    if dry_run:
        logger.info("Would render %s -> %s", src, out)
        return None

    backup: Optional[Path] = None
    if out.exists():
        try:
            backup = backup_file(out, backup_dir)
            logger.debug("Backed up existing file: %s -> %s", out, backup)
        except OSError as e:
            logger.warning("Failed to backup existing file %s: %s", out, e)

    rendered = substitute(src.read_text(encoding="utf-8"), merged)
    atomic_write_text(out, rendered)
    logger.debug("Processed template: %s", out)
    return backup


def package_template(name: str) -> Path:
    """Path of a template shipped with the installer."""
    return PACKAGE_TEMPLATES_DIR / name
