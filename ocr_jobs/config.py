"""
Конфигурация OCR Jobs Service.

Все значения читаются из .env файла (или переменных окружения).
Единый префикс: OCR_

Документация по параметрам: .env.example
"""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Настройки сервиса пакетного OCR.

    Читает переменные с префиксом OCR_ из .env файла.
    """

    model_config = SettingsConfigDict(
        env_prefix="OCR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Сервер ---
    host: str = "0.0.0.0"
    port: int = 3434
    log_level: str = "INFO"

    # --- Хранилище файлов ---
    # Загрузки пользователей (чистятся по retention)
    uploads_dir: str = "uploads"
    # Корпус примеров для /api/random
    examples_dir: str = "examples"

    # --- OCR: Tesseract ---
    language: str = "eng"
    ocr_oem: int = 3
    ocr_psm: int = 3

    # --- Задачи ---
    sample_size: int = Field(default=10, ge=1)
    # Сколько изображений распознаётся одновременно (по всем задачам)
    max_concurrent_images: int = Field(default_factory=lambda: os.cpu_count() or 4, ge=1)
    # Дедлайн одного вызова OCR, 0 отключает
    task_timeout_seconds: float = Field(default=120.0, ge=0)

    # --- Хранилище задач ---
    job_ttl_seconds: float = Field(default=24 * 60 * 60, gt=0)
    max_jobs: int = Field(default=1000, ge=1)

    # --- Очистка загрузок ---
    retention_hours: float = Field(default=12, gt=0)
    sweep_interval_minutes: float = Field(default=10, gt=0)


# Глобальный экземпляр настроек
settings = Settings()
