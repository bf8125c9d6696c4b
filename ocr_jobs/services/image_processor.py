"""
Процессор изображений задачи.

Для каждого изображения запускается отдельная asyncio задача:
    1. Берёт движок OCR на время обработки (open_engine)
    2. Распознаёт изображение по пути в хранилище
    3. Разбирает TSV в список слов
    4. Пишет результат (или ошибку) в запись задачи по её индексу

Ограничения:
    - Общий семафор ограничивает число одновременно работающих движков
    - Дедлайн на один вызов OCR (asyncio.wait_for). По дедлайну слот
      семафора освобождается сразу, а поток с tesseract живёт до своего
      timeout процесса (open_engine получает то же значение). Проверки
      движка при старте (версия, языки) дедлайна процесса не имеют
    - Ошибка одного изображения не влияет на остальные и видна
      только в поле error его записи
"""

import asyncio
import logging
import time
from functools import partial

from ocr_jobs.exceptions import (
    OCRJobError,
    TaskCancelledError,
    TaskTimeoutError,
    UnknownJobError,
)
from ocr_jobs.schemas import ImageDescriptor, RecordError, RecordStatus, RowDefect
from ocr_jobs.services.annotation_parser import AnnotationParseResult, parse_annotations
from ocr_jobs.services.job_store import JobStore
from ocr_jobs.services.ocr_engine import EngineFactory, open_engine

logger = logging.getLogger(__name__)


class ImageProcessor:
    """
    Запускает распознавание изображений задачи в фоне.

    Args:
        store: хранилище задач
        language: языки Tesseract
        max_concurrency: максимум одновременно обрабатываемых изображений
        task_timeout: дедлайн одного распознавания в секундах (0 — без дедлайна);
            фабрика движков должна ограничивать процесс tesseract тем же значением
        engine_factory: фабрика движков OCR
    """

    def __init__(
        self,
        store: JobStore,
        language: str,
        max_concurrency: int,
        task_timeout: float = 0,
        engine_factory: EngineFactory = open_engine,
    ) -> None:
        self._store = store
        self._language = language
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._timeout = task_timeout or None
        self._engine_factory = engine_factory
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def process_job(self, job_id: str, images: list[ImageDescriptor]) -> list[asyncio.Task]:
        """
        Запускает по задаче на каждое изображение и сразу возвращается.

        Должен вызываться из работающего event loop.

        Returns:
            list[asyncio.Task]: запущенные задачи (в порядке изображений)
        """
        tasks = []
        for index, image in enumerate(images):
            task = asyncio.create_task(
                self._process_image(job_id, index, image),
                name=f"ocr-{job_id}-{index}",
            )
            self._tasks.add(task)
            task.add_done_callback(
                partial(self._on_task_done, job_id=job_id, index=index, image=image)
            )
            tasks.append(task)

        logger.info(f"Задача {job_id}: запущено {len(tasks)} изображений")
        return tasks

    async def drain(self) -> None:
        """Ждёт завершения всех запущенных задач."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Отменяет все незавершённые задачи и ждёт их завершения."""
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            logger.info(f"Остановка: отменено задач распознавания {len(pending)}")
            await asyncio.gather(*pending, return_exceptions=True)

    async def _process_image(self, job_id: str, index: int, image: ImageDescriptor) -> None:
        start = time.perf_counter()

        try:
            async with self._semaphore:
                text, parsed = await asyncio.wait_for(
                    self._recognize(image), timeout=self._timeout
                )
        except asyncio.TimeoutError:
            self._fail(
                job_id,
                index,
                image,
                TaskTimeoutError(f"Распознавание не уложилось в {self._timeout} с"),
            )
            return
        except OCRJobError as e:
            self._fail(job_id, index, image, e)
            return
        except Exception as e:
            logger.exception(f"Непредвиденная ошибка OCR {image.filename}: {e}")
            self._fail(job_id, index, image, e)
            return

        defects = [
            RowDefect(row_number=d.row_number, field_count=d.field_count, raw=d.raw)
            for d in parsed.defects
        ]
        self._write(
            job_id,
            index,
            text=text,
            ocr_data=parsed.words,
            parse_defects=defects,
        )

        duration = int((time.perf_counter() - start) * 1000)
        logger.info(
            f"   {job_id}[{index}] {image.filename}: "
            f"{len(text)} симв., {len(parsed.words)} слов за {duration}ms"
        )

    def _on_task_done(
        self,
        task: asyncio.Task,
        job_id: str,
        index: int,
        image: ImageDescriptor,
    ) -> None:
        self._tasks.discard(task)
        if not task.cancelled():
            return

        # Отменённая до первого шага корутина не успевает записать ошибку
        job = self._store.get(job_id)
        if job is not None and job.records[index].status == RecordStatus.PROCESSING:
            self._fail(job_id, index, image, TaskCancelledError("Распознавание отменено"))

    async def _recognize(self, image: ImageDescriptor) -> tuple[str, AnnotationParseResult]:
        async with self._engine_factory(self._language) as engine:
            output = await engine.recognize(image.path)
        return output.text, parse_annotations(output.tsv)

    def _fail(self, job_id: str, index: int, image: ImageDescriptor, error: BaseException) -> None:
        logger.warning(f"   {job_id}[{index}] {image.filename}: {type(error).__name__}: {error}")
        self._write(
            job_id,
            index,
            error=RecordError(message=str(error) or repr(error), cause=type(error).__name__),
        )

    def _write(self, job_id: str, index: int, **patch) -> None:
        try:
            self._store.update_record(job_id, index, **patch)
        except UnknownJobError:
            # Задача вытеснена из хранилища, результат некуда писать
            logger.warning(f"   {job_id}[{index}]: задача уже удалена, результат отброшен")
