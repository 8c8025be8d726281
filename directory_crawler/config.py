# === FILE: directory_crawler/config.py ===
"""
Модуль для загрузки и валидации конфигурации краулера DirectoryCrawler.
Используется Pydantic для описания схемы и проверки данных.
"""
from __future__ import annotations

import errno
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; EnterpriseCrawler/1.0; +https://yourdomain.com/bot)"


class CrawlerConfig(BaseModel):
    """Конфигурация краулера: сетевые лимиты, обход и хранилище."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    timeout_ms: int = Field(10_000, gt=0, description="Таймаут на один запрос (миллисекунды).")
    max_redirects: int = Field(3, ge=0, description="Максимальное число редиректов.")
    rate_limit_per_window: int = Field(1000, ge=1, description="Запросов на одно окно лимитера.")
    rate_window_seconds: float = Field(1.0, gt=0, description="Длина окна лимитера (секунд).")
    max_depth: int = Field(2, ge=0, description="Максимальная глубина обхода ссылок.")
    concurrency: int = Field(4, ge=1, description="Число одновременных запросов.")
    max_runtime_seconds: Optional[float] = Field(
        None, gt=0, description="Потолок времени работы всего запуска (секунд)."
    )
    retry_times: int = Field(0, ge=0, description="Повторы при сетевых ошибках (только crawl/batch).")
    user_agent: str = Field(DEFAULT_USER_AGENT, min_length=1, description="Заголовок User-Agent.")
    force_https: bool = Field(True, description="Переводить http:// на https:// при нормализации.")
    technology_signatures: Dict[str, str] = Field(
        default_factory=dict,
        description="Доп. сигнатуры технологий: имя -> регулярное выражение для src скриптов.",
    )
    store_path: Path = Field(Path("data/websites.json"), description="JSON-файл с записями сайтов.")

    @property
    def timeout(self) -> float:
        """Таймаут запроса в секундах (для aiohttp.ClientTimeout)."""
        return self.timeout_ms / 1000

    @field_validator("technology_signatures")
    @classmethod
    def _check_signatures(cls, v: Dict[str, str]) -> Dict[str, str]:
        for name, pattern in v.items():
            if not name.strip():
                raise ValueError("имя технологии не может быть пустым")
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"неверная сигнатура для {name!r}: {exc}") from exc
        return v

    @model_validator(mode="after")
    def _check_runtime(self) -> CrawlerConfig:
        if self.max_runtime_seconds is not None and self.max_runtime_seconds < self.timeout:
            raise ValueError("max_runtime_seconds не может быть меньше таймаута одного запроса")
        return self


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None]) -> CrawlerConfig:
    """
    Читает YAML или JSON и возвращает проверенный объект CrawlerConfig.
    При отсутствии файла конфига бросает FileNotFoundError.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(_DEFAULT_CFG))
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")

    return CrawlerConfig(**data)


__all__ = ["CrawlerConfig", "load_config", "DEFAULT_USER_AGENT", "ValidationError"]
