from __future__ import annotations

from pathlib import Path
from typing import Optional


class BuildError(Exception):
    """Base class for every error that aborts a build."""


class ConfigError(BuildError):
    def __init__(self, message: str, field: Optional[str] = None, path: Optional[Path] = None):
        self.message = message
        self.field = field
        self.path = path
        where = ""
        if path is not None:
            where = f"{path}: "
        if field:
            where = f"{where}[{field}] "
        super().__init__(f"{where}{message}")


class ContentError(BuildError):
    def __init__(self, path: Path, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class TemplateRenderError(BuildError):
    def __init__(self, template: str, message: str):
        self.template = template
        super().__init__(f"Template {template}: {message}")


class AssetError(BuildError):
    def __init__(self, path: Path, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")
