"""
In-memory хранилище задач.

Особенности:
    - Хранение в памяти (без персистентности)
    - Связь с задачей через UUID
    - TTL на задачу и лимит количества задач (вытесняются самые старые)

Блокировок нет: все обращения идут из одного event loop, и ни одна
операция хранилища не уступает управление посреди изменения.
"""

import logging
import time
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Optional, Protocol

from ocr_jobs.exceptions import RecordStateError, UnknownJobError
from ocr_jobs.schemas import (
    ImageDescriptor,
    ImageRecord,
    Job,
    RecordError,
    RecordStatus,
    RowDefect,
    Word,
)

logger = logging.getLogger(__name__)


class JobStore(Protocol):
    """Интерфейс хранилища задач."""

    def create(self, images: list[ImageDescriptor]) -> str: ...

    def get(self, job_id: str) -> Optional[Job]: ...

    def update_record(
        self,
        job_id: str,
        index: int,
        *,
        text: Optional[str] = None,
        ocr_data: Optional[list[Word]] = None,
        error: Optional[RecordError] = None,
        parse_defects: Optional[list[RowDefect]] = None,
    ) -> ImageRecord: ...


class InMemoryJobStore:
    """
    Хранилище задач в памяти процесса с ограниченным сроком жизни.

    Args:
        ttl_seconds: через сколько секунд после создания задача вытесняется
        max_jobs: максимум задач; при превышении вытесняется самая старая
        clock: источник монотонного времени (подменяется в тестах)
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_jobs: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_jobs = max_jobs
        self._clock = clock
        # Порядок вставки = порядок создания
        self._jobs: "OrderedDict[str, Job]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._jobs)

    def create(self, images: list[ImageDescriptor]) -> str:
        """
        Создаёт задачу со всеми записями в статусе processing.

        Выполняется синхронно: опрос сразу после постановки видит
        все записи.

        Args:
            images: изображения задачи в порядке постановки

        Returns:
            str: UUID задачи
        """
        self.evict_expired()

        job_id = str(uuid.uuid4())
        self._jobs[job_id] = Job(
            job_id=job_id,
            created_at=datetime.now(),
            expires_at=self._clock() + self._ttl,
            records=[ImageRecord(filename=image.filename) for image in images],
        )

        while len(self._jobs) > self._max_jobs:
            evicted_id, _ = self._jobs.popitem(last=False)
            logger.warning(f"Лимит задач {self._max_jobs}: вытеснена задача {evicted_id}")

        logger.info(
            f"Создана задача: job_id={job_id}, "
            f"изображений={len(images)}, "
            f"всего в хранилище={len(self._jobs)}"
        )
        return job_id

    def get(self, job_id: str) -> Optional[Job]:
        """
        Получает задачу по UUID.

        Returns:
            Job или None если задача не найдена или истекла
        """
        self.evict_expired()
        return self._jobs.get(job_id)

    def require(self, job_id: str) -> Job:
        """
        Как get(), но с явной ошибкой.

        Raises:
            UnknownJobError: задача не найдена
        """
        job = self.get(job_id)
        if job is None:
            raise UnknownJobError(job_id)
        return job

    def update_record(
        self,
        job_id: str,
        index: int,
        *,
        text: Optional[str] = None,
        ocr_data: Optional[list[Word]] = None,
        error: Optional[RecordError] = None,
        parse_defects: Optional[list[RowDefect]] = None,
    ) -> ImageRecord:
        """
        Финальное обновление записи: status -> done.

        Либо результат (text, ocr_data, parse_defects), либо error.
        Каждый индекс принадлежит одной задаче обработки, поэтому
        параллельных записей в один индекс не бывает.

        Args:
            job_id: UUID задачи
            index: индекс изображения в задаче

        Returns:
            ImageRecord: обновлённая запись

        Raises:
            UnknownJobError: задача не найдена (или вытеснена)
            IndexError: индекс вне диапазона
            RecordStateError: запись уже завершена
            ValueError: одновременно передан результат и ошибка
        """
        if error is not None and (text is not None or ocr_data is not None or parse_defects):
            raise ValueError("Запись не может одновременно содержать результат и ошибку")

        job = self._jobs.get(job_id)
        if job is None:
            raise UnknownJobError(job_id)

        record = job.records[index]
        if record.status == RecordStatus.DONE:
            raise RecordStateError(f"Запись {job_id}[{index}] уже завершена")

        if error is not None:
            update = {"status": RecordStatus.DONE, "error": error}
        else:
            update = {
                "status": RecordStatus.DONE,
                "text": text if text is not None else "",
                "ocr_data": ocr_data if ocr_data is not None else [],
                "parse_defects": parse_defects or None,
            }

        updated = record.model_copy(update=update)
        job.records[index] = updated
        return updated

    def evict_expired(self) -> int:
        """
        Удаляет задачи с истёкшим TTL.

        Returns:
            int: сколько задач удалено
        """
        now = self._clock()
        expired = [job_id for job_id, job in self._jobs.items() if job.expires_at <= now]
        for job_id in expired:
            del self._jobs[job_id]

        if expired:
            logger.info(f"TTL: удалено задач {len(expired)}, осталось {len(self._jobs)}")
        return len(expired)

    def stats(self) -> dict:
        """
        Возвращает статистику хранилища.

        Полезно для мониторинга памяти.

        Returns:
            dict: {jobs_count, oldest_job, newest_job}
        """
        self.evict_expired()

        if not self._jobs:
            return {
                "jobs_count": 0,
                "oldest_job": None,
                "newest_job": None,
            }

        oldest = next(iter(self._jobs.values()))
        newest = next(reversed(self._jobs.values()))

        return {
            "jobs_count": len(self._jobs),
            "oldest_job": {
                "job_id": oldest.job_id,
                "created_at": oldest.created_at.isoformat(),
            },
            "newest_job": {
                "job_id": newest.job_id,
                "created_at": newest.created_at.isoformat(),
            },
        }
