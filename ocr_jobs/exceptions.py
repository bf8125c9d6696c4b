"""
Иерархия ошибок OCR Jobs Service.

Ошибки обработки изображения не пробрасываются наружу: они
записываются в поле error соответствующей записи задачи.
"""

from typing import Optional


class OCRJobError(Exception):
    """Базовая ошибка сервиса."""


class EngineInitError(OCRJobError):
    """Tesseract или языковая модель недоступны."""


class RecognitionError(OCRJobError):
    """Ошибка распознавания: нет файла, битое изображение, сбой Tesseract."""


class TaskTimeoutError(OCRJobError):
    """Распознавание не уложилось в дедлайн."""


class TaskCancelledError(OCRJobError):
    """Задача распознавания отменена (остановка сервиса)."""


class ParseDefect(OCRJobError):
    """
    Некорректная строка TSV уровня слова.

    Attributes:
        row_number: номер строки в исходном TSV (с 1)
        field_count: фактическое количество полей
        raw: исходная строка
    """

    def __init__(self, row_number: int, field_count: int, raw: str) -> None:
        self.row_number = row_number
        self.field_count = field_count
        self.raw = raw
        super().__init__(
            f"Строка {row_number}: ожидалось 12 полей, получено {field_count}"
        )


class StorageSweepError(OCRJobError):
    """Не удалось проверить или удалить файл при очистке загрузок."""

    def __init__(self, path: str, cause: Optional[BaseException] = None) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Ошибка очистки {path}: {cause}")


class UnknownJobError(OCRJobError):
    """Задача с таким id не найдена (или уже вытеснена из хранилища)."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Задача {job_id} не найдена")


class RecordStateError(OCRJobError):
    """Повторная финальная запись в уже завершённую запись."""


class EmptyCorpusError(OCRJobError):
    """В каталоге примеров нет файлов для случайной выборки."""
