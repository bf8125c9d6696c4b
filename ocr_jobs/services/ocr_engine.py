"""
Адаптер Tesseract OCR.

Экземпляр движка берётся на время обработки одного изображения через
асинхронный контекстный менеджер open_engine() и всегда освобождается,
в том числе при ошибке.

Распознавание — один вызов image_to_data (TSV), текст собирается
из тех же данных. Блокирующие вызовы уходят в threadpool.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncContextManager, AsyncIterator, Callable, Optional, Protocol

import pytesseract
from PIL import Image
from starlette.concurrency import run_in_threadpool

from ocr_jobs.config import settings
from ocr_jobs.exceptions import EngineInitError, RecognitionError
from ocr_jobs.schemas import RecognitionOutput
from ocr_jobs.services.annotation_parser import assemble_text, parse_annotations

logger = logging.getLogger(__name__)


class OCREngine(Protocol):
    """Движок, распознающий изображение по пути в хранилище."""

    async def recognize(self, path: str) -> RecognitionOutput: ...


# Фабрика движков: язык -> async context manager с движком
EngineFactory = Callable[[str], AsyncContextManager[OCREngine]]


class TesseractEngine:
    """
    Движок на pytesseract для одного языка.

    Args:
        language: языки Tesseract (например "eng" или "rus+eng")
        oem: OCR Engine Mode
        psm: Page Segmentation Mode
        timeout: таймаут процесса tesseract в секундах (0 — без ограничения)
    """

    def __init__(
        self,
        language: str,
        oem: int = 3,
        psm: int = 3,
        timeout: float = 0,
    ) -> None:
        self.language = language
        self._config = f"--oem {oem} --psm {psm}"
        self._timeout = timeout
        self._ready = False

    def start(self) -> None:
        """
        Проверяет наличие tesseract и языковых моделей.

        Raises:
            EngineInitError: tesseract не установлен или нет модели языка
        """
        try:
            version = pytesseract.get_tesseract_version()
            available = set(pytesseract.get_languages(config=""))
        except Exception as e:
            raise EngineInitError(f"Tesseract недоступен: {e}") from e

        missing = [lang for lang in self.language.split("+") if lang not in available]
        if missing:
            raise EngineInitError(
                f"Нет языковой модели Tesseract: {', '.join(missing)}"
            )

        self._ready = True
        logger.debug(f"Tesseract {version} готов, язык: {self.language}")

    def close(self) -> None:
        self._ready = False

    async def recognize(self, path: str) -> RecognitionOutput:
        """
        Распознаёт изображение по пути.

        Args:
            path: путь к файлу изображения

        Returns:
            RecognitionOutput: текст и TSV

        Raises:
            RecognitionError: файл не найден, не читается или сбой Tesseract
        """
        if not self._ready:
            raise RecognitionError("Движок не инициализирован")
        return await run_in_threadpool(self._recognize_sync, path)

    def _recognize_sync(self, path: str) -> RecognitionOutput:
        try:
            with Image.open(path) as image:
                tsv = pytesseract.image_to_data(
                    image,
                    lang=self.language,
                    config=self._config,
                    timeout=self._timeout,
                    output_type=pytesseract.Output.STRING,
                )
        except FileNotFoundError as e:
            raise RecognitionError(f"Файл не найден: {Path(path).name}") from e
        except pytesseract.TesseractNotFoundError as e:
            raise RecognitionError(f"Tesseract недоступен: {e}") from e
        except OSError as e:
            # Pillow: UnidentifiedImageError наследует OSError
            raise RecognitionError(f"Не удалось открыть изображение: {e}") from e
        except (pytesseract.TesseractError, RuntimeError) as e:
            # RuntimeError: таймаут процесса tesseract
            raise RecognitionError(f"Ошибка Tesseract: {e}") from e

        text = assemble_text(parse_annotations(tsv).words)
        return RecognitionOutput(text=text, tsv=tsv)


@asynccontextmanager
async def open_engine(
    language: str,
    oem: Optional[int] = None,
    psm: Optional[int] = None,
    timeout: Optional[float] = None,
) -> AsyncIterator[TesseractEngine]:
    """
    Выдаёт инициализированный движок Tesseract на время блока.

    Args:
        language: языки Tesseract
        oem, psm, timeout: переопределение значений из settings

    Yields:
        TesseractEngine: готовый к работе движок

    Raises:
        EngineInitError: при ошибке инициализации
    """
    engine = TesseractEngine(
        language,
        oem=settings.ocr_oem if oem is None else oem,
        psm=settings.ocr_psm if psm is None else psm,
        timeout=settings.task_timeout_seconds if timeout is None else timeout,
    )
    try:
        await run_in_threadpool(engine.start)
        yield engine
    finally:
        engine.close()
