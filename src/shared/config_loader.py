"""Завантаження YAML конфігурацій."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml

log = logging.getLogger(__name__)


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Зчитує YAML файл та повертає його вміст як dict.

    Args:
        path: Шлях до файлу.

    Returns:
        Вміст файлу як словник (порожній, якщо файл порожній).

    Raises:
        FileNotFoundError: Якщо файл не знайдено.
        yaml.YAMLError: Якщо файл не є коректним YAML.
        ValueError: Якщо верхній рівень не є mapping.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    with p.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config {p} must be a mapping, got {type(data).__name__}")
    log.debug("Loaded config %s (%d top-level keys)", p.name, len(data))
    return data


def first_existing(paths: Iterable[str | Path]) -> Path | None:
    """Повертає перший шлях зі списку, який існує та доступний для читання."""
    for candidate in paths:
        p = Path(candidate).expanduser()
        if p.is_file() and os.access(p, os.R_OK):
            return p
    return None
