"""
Схемы данных OCR Jobs Service.

Включает:
    - Pydantic модели для API (изображения, записи задачи, ответы)
    - Внутренние dataclass'ы для пайплайна обработки
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_serializer


# =============================================================================
# Pydantic модели для API
# =============================================================================


class RecordStatus(str, Enum):
    """Статус обработки одного изображения. Переход только processing -> done."""

    PROCESSING = "processing"
    DONE = "done"


class JobStatus(str, Enum):
    """Сводный статус задачи, вычисляется по её записям."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class ImageDescriptor(BaseModel):
    """
    Принятое к обработке изображение.

    Attributes:
        filename: имя файла (ключ для клиента)
        path: путь к файлу в хранилище (в JSON — storagePath)
    """

    filename: str
    path: str = Field(serialization_alias="storagePath")


class Word(BaseModel):
    """
    Одно распознанное слово из TSV вывода Tesseract.

    Значения передаются как есть — строками, без приведения к числам,
    в том же виде, в каком их отдал движок.

    Attributes:
        level: уровень иерархии (для слов всегда "5")
        page_num, block_num, par_num, line_num, word_num: индексы в иерархии
        left, top, width, height: bounding box слова в пикселях
        conf: уверенность распознавания (0-100)
        text: распознанный текст
    """

    level: str
    page_num: str
    block_num: str
    par_num: str
    line_num: str
    word_num: str
    left: str
    top: str
    width: str
    height: str
    conf: str
    text: str


class RecordError(BaseModel):
    """
    Ошибка обработки изображения.

    Attributes:
        message: описание ошибки
        cause: класс ошибки (EngineInitError, RecognitionError, ...)
    """

    message: str
    cause: str


class RowDefect(BaseModel):
    """Некорректная строка TSV, пропущенная при разборе."""

    row_number: int
    field_count: int
    raw: str


class ImageRecord(BaseModel):
    """
    Состояние обработки одного изображения в задаче.

    Поля error и parse_defects не сериализуются, пока не заданы —
    свежая запись выглядит как {filename, status, text, ocr_data}.

    Attributes:
        filename: имя файла
        status: processing | done
        text: распознанный текст (только при успехе)
        ocr_data: список слов с координатами (только при успехе)
        error: ошибка обработки (только при неудаче)
        parse_defects: некорректные строки TSV (только при успехе)
    """

    filename: str
    status: RecordStatus = RecordStatus.PROCESSING
    text: Optional[str] = None
    ocr_data: Optional[list[Word]] = None
    error: Optional[RecordError] = None
    parse_defects: Optional[list[RowDefect]] = None

    @model_serializer(mode="wrap")
    def _omit_absent(self, handler):
        data = handler(self)
        for key in ("error", "parse_defects"):
            if data.get(key) is None:
                data.pop(key, None)
        return data

    @property
    def succeeded(self) -> bool:
        return self.status == RecordStatus.DONE and self.error is None

    @property
    def failed(self) -> bool:
        return self.status == RecordStatus.DONE and self.error is not None


class SubmissionResponse(BaseModel):
    """
    Ответ на постановку задачи (202 Accepted).

    Attributes:
        images: принятые изображения
        job_id: id задачи для опроса (в JSON — jobId)
    """

    images: list[ImageDescriptor]
    job_id: str = Field(serialization_alias="jobId")


class JobSummary(BaseModel):
    """Сводка по задаче: счётчики записей и общий статус."""

    job_id: str
    status: JobStatus
    total: int
    processing: int
    succeeded: int
    failed: int
    created_at: datetime


# =============================================================================
# Внутренние dataclass'ы
# =============================================================================


@dataclass
class Job:
    """
    Задача: упорядоченный список записей фиксированной длины.

    Индекс записи совпадает с индексом изображения при постановке
    и не меняется до конца жизни задачи.

    Attributes:
        job_id: уникальный UUID задачи
        created_at: время создания
        expires_at: момент вытеснения по TTL (time.monotonic)
        records: записи по изображениям
    """

    job_id: str
    created_at: datetime
    expires_at: float
    records: list[ImageRecord] = field(default_factory=list)

    def summary(self) -> JobSummary:
        processing = sum(1 for r in self.records if r.status == RecordStatus.PROCESSING)
        succeeded = sum(1 for r in self.records if r.succeeded)
        failed = sum(1 for r in self.records if r.failed)

        if processing:
            status = JobStatus.PROCESSING
        elif failed == 0:
            status = JobStatus.COMPLETED
        elif succeeded == 0:
            status = JobStatus.FAILED
        else:
            status = JobStatus.PARTIAL

        return JobSummary(
            job_id=self.job_id,
            status=status,
            total=len(self.records),
            processing=processing,
            succeeded=succeeded,
            failed=failed,
            created_at=self.created_at,
        )


@dataclass
class RecognitionOutput:
    """
    Сырой результат Tesseract для одного изображения.

    Attributes:
        text: распознанный текст
        tsv: TSV таблица image_to_data (12 колонок, с заголовком)
    """

    text: str
    tsv: str


@dataclass
class SweepReport:
    """
    Итог одного прохода очистки загрузок.

    Attributes:
        scanned: сколько файлов проверено
        deleted: имена удалённых файлов
        failed: имена файлов, которые не удалось обработать
    """

    scanned: int = 0
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
