"""
Сервисы пакетного OCR.

Модули:
    - annotation_parser: разбор TSV вывода Tesseract в список слов
    - ocr_engine: адаптер Tesseract с ограниченным временем жизни
    - job_store: in-memory хранилище задач с TTL
    - image_processor: параллельное распознавание изображений задачи
    - job_submitter: постановка задач (загрузки и случайная выборка)
    - retention_sweeper: фоновая очистка каталога загрузок
"""

from ocr_jobs.services.annotation_parser import assemble_text, parse_annotations
from ocr_jobs.services.image_processor import ImageProcessor
from ocr_jobs.services.job_store import InMemoryJobStore, JobStore
from ocr_jobs.services.job_submitter import JobSubmitter
from ocr_jobs.services.ocr_engine import TesseractEngine, open_engine
from ocr_jobs.services.retention_sweeper import RetentionSweeper

__all__ = [
    "parse_annotations",
    "assemble_text",
    "open_engine",
    "TesseractEngine",
    "JobStore",
    "InMemoryJobStore",
    "ImageProcessor",
    "JobSubmitter",
    "RetentionSweeper",
]
