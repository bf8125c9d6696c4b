"""
Фоновая очистка каталога загрузок.

Раз в sweep_interval удаляет файлы, которые не менялись дольше
retention. Ошибка по одному файлу логируется и не прерывает проход,
ошибка прохода целиком не останавливает расписание.
"""

import asyncio
import logging
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from starlette.concurrency import run_in_threadpool

from ocr_jobs.exceptions import StorageSweepError
from ocr_jobs.schemas import SweepReport

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """
    Периодическое удаление устаревших загрузок.

    Args:
        directory: каталог загрузок
        retention_seconds: максимальный возраст файла (по mtime)
        interval_seconds: пауза между проходами
        clock: источник текущего времени (подменяется в тестах)
    """

    def __init__(
        self,
        directory: Path,
        retention_seconds: float,
        interval_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._directory = Path(directory)
        self._retention = retention_seconds
        self._interval = interval_seconds
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    async def sweep(self) -> SweepReport:
        """
        Один проход очистки.

        Returns:
            SweepReport: сколько файлов проверено, удалено и с ошибками
        """
        report = SweepReport()

        try:
            names = await run_in_threadpool(os.listdir, self._directory)
        except FileNotFoundError:
            logger.warning(f"Каталог загрузок не найден: {self._directory}")
            return report

        now = self._clock()
        for name in names:
            path = self._directory / name
            report.scanned += 1
            try:
                deleted = await run_in_threadpool(self._remove_if_stale, path, now)
            except StorageSweepError as e:
                logger.error(str(e))
                report.failed.append(name)
                continue

            if deleted:
                report.deleted.append(name)
                logger.info(f"Удалён {name} из каталога загрузок ({datetime.now().isoformat()})")

        return report

    def _remove_if_stale(self, path: Path, now: float) -> bool:
        try:
            stats = path.stat()
            if not path.is_file():
                return False
            if now - stats.st_mtime <= self._retention:
                return False
            path.unlink()
        except FileNotFoundError:
            # Файл уже удалён кем-то другим
            return False
        except OSError as e:
            raise StorageSweepError(str(path), e) from e
        return True

    async def run_forever(self) -> None:
        """Проход сразу, затем каждые interval секунд до отмены."""
        while True:
            try:
                report = await self.sweep()
                if report.deleted or report.failed:
                    logger.info(
                        f"Очистка: проверено {report.scanned}, "
                        f"удалено {len(report.deleted)}, ошибок {len(report.failed)}"
                    )
            except Exception as e:
                logger.exception(f"Ошибка очистки загрузок: {e}")
            await asyncio.sleep(self._interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever(), name="retention-sweeper")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
