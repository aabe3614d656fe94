"""Configuration loading helpers for Listing-Crawler."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .models import CrawlConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
CRAWL_CONFIG_FILENAME = "crawl_config.yaml"
TEMPLATE_FILENAME = "crawl_template.yaml"
HOME_ENV_VAR = "LISTING_CRAWLER_HOME"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    output_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get(HOME_ENV_VAR)
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path(__file__).resolve().parents[2]).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.output_dir = (root / "output").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.output_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def crawl_config_path(self) -> Path:
        return self.data_dir / CRAWL_CONFIG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()

    def resolve_path(self, path: Path | None = None) -> Path:
        return path if path is not None else self.locator.crawl_config_path()

    def load(self, path: Path | None = None) -> CrawlConfig:
        target = self.resolve_path(path)
        if not target.exists():
            raise FileNotFoundError(f"Crawl configuration not found: {target}")
        if target.suffix not in CONFIG_EXTENSIONS:
            raise ValueError(f"Unsupported configuration format: {target.suffix}")
        payload = _read_file(target)
        return CrawlConfig.model_validate(payload)

    def save(self, config: CrawlConfig, path: Path | None = None) -> Path:
        """Persist configuration; broker credentials are never written to disk."""

        target = self.resolve_path(path)
        payload = config.model_dump(mode="json", exclude={"proxy": {"credentials"}})
        _write_file(target, payload)
        return target

    def output_directory(self, config: CrawlConfig) -> Path:
        return config.output.resolved_directory(self.locator.project_root)

    def ensure_template(self, template_name: str = TEMPLATE_FILENAME) -> Path:
        """Return the template file path from the bundled templates directory."""

        templates_dir = Path(__file__).resolve().parent / "templates"
        template_path = templates_dir / template_name
        if not template_path.exists():
            raise FileNotFoundError(f"Template not found: {template_path}")
        return template_path

    def init_from_template(self, path: Path | None = None, force: bool = False) -> Path:
        target = self.resolve_path(path)
        if target.exists() and not force:
            raise FileExistsError(f"Configuration already exists: {target}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.ensure_template().read_text(encoding="utf-8"), encoding="utf-8")
        return target


__all__ = [
    "CONFIG_EXTENSIONS",
    "CRAWL_CONFIG_FILENAME",
    "ConfigLocator",
    "ConfigRepository",
    "HOME_ENV_VAR",
]
