"""
Постановка задач распознавания.

Два варианта:
    - submit: готовый список изображений (загрузка файлов — снаружи)
    - submit_sample: случайная выборка из каталога примеров

В обоих случаях задача создаётся синхронно, обработка запускается
в фоне, ответ возвращается сразу.
"""

import logging
import random
from pathlib import Path
from typing import Optional, TypeVar

from starlette.concurrency import run_in_threadpool

from ocr_jobs.exceptions import EmptyCorpusError
from ocr_jobs.schemas import ImageDescriptor, SubmissionResponse
from ocr_jobs.services.image_processor import ImageProcessor
from ocr_jobs.services.job_store import JobStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def shuffle_in_place(items: list[T], rng: random.Random) -> list[T]:
    """Несмещённое перемешивание Фишера–Йетса."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def pick_sample(items: list[T], size: int, rng: random.Random) -> list[T]:
    """
    Выбирает size различных элементов без возвращения.

    Если элементов меньше size — возвращаются все (в случайном порядке).
    """
    return shuffle_in_place(list(items), rng)[:size]


def list_corpus(directory: Path) -> list[str]:
    """
    Список файлов корпуса примеров.

    Скрытые файлы и подкаталоги пропускаются, имена отсортированы.
    Отсутствующий каталог — пустой список.
    """
    if not directory.is_dir():
        return []
    return sorted(
        entry.name
        for entry in directory.iterdir()
        if entry.is_file() and not entry.name.startswith(".")
    )


class JobSubmitter:
    """
    Создаёт задачу и передаёт её процессору.

    Args:
        store: хранилище задач
        processor: процессор изображений
        examples_dir: каталог корпуса примеров
        sample_size: размер случайной выборки
        rng: генератор случайных чисел (подменяется в тестах)
    """

    def __init__(
        self,
        store: JobStore,
        processor: ImageProcessor,
        examples_dir: Path,
        sample_size: int = 10,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._store = store
        self._processor = processor
        self._examples_dir = Path(examples_dir)
        self._sample_size = sample_size
        self._rng = rng or random.SystemRandom()

    def submit(self, images: list[ImageDescriptor]) -> SubmissionResponse:
        """
        Ставит задачу на готовый список изображений.

        К моменту возврата задача уже в хранилище, все записи в processing.

        Args:
            images: изображения в порядке постановки

        Returns:
            SubmissionResponse: {images, jobId}
        """
        job_id = self._store.create(images)
        self._processor.process_job(job_id, images)
        return SubmissionResponse(images=images, job_id=job_id)

    async def submit_sample(self) -> SubmissionResponse:
        """
        Ставит задачу на случайную выборку из корпуса примеров.

        Raises:
            EmptyCorpusError: в каталоге примеров нет файлов
        """
        files = await run_in_threadpool(list_corpus, self._examples_dir)
        if not files:
            raise EmptyCorpusError(f"В каталоге {self._examples_dir} нет файлов")

        chosen = pick_sample(files, self._sample_size, self._rng)
        logger.info(f"Случайная выборка: {len(chosen)} из {len(files)} файлов")

        images = [
            ImageDescriptor(filename=name, path=str(self._examples_dir / name))
            for name in chosen
        ]
        return self.submit(images)
