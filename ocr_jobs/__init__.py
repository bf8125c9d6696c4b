"""
OCR Jobs Service — пакетное распознавание текста на изображениях.

Принимает набор изображений, ставит задачу и сразу отвечает её id.
Распознавание идёт в фоне (Tesseract, по asyncio задаче на изображение),
прогресс по каждому изображению доступен через опрос задачи.

Фоновая очистка удаляет устаревшие загрузки.
"""

from ocr_jobs.config import settings
from ocr_jobs.schemas import ImageDescriptor, ImageRecord, SubmissionResponse, Word

__all__ = [
    "settings",
    "ImageDescriptor",
    "ImageRecord",
    "SubmissionResponse",
    "Word",
]
