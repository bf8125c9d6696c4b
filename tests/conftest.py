"""Общие фикстуры: TSV Tesseract и подменный движок OCR."""

import asyncio
import re
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Union

import pytest

from ocr_jobs.exceptions import EngineInitError
from ocr_jobs.schemas import ImageDescriptor, RecognitionOutput
from ocr_jobs.services.job_store import InMemoryJobStore

TSV_HEADER = [
    "level", "page_num", "block_num", "par_num", "line_num", "word_num",
    "left", "top", "width", "height", "conf", "text",
]

TSV_ROWS = [
    ["1", "1", "0", "0", "0", "0", "0", "0", "640", "480", "-1", ""],
    ["2", "1", "1", "0", "0", "0", "36", "92", "582", "92", "-1", ""],
    ["3", "1", "1", "1", "0", "0", "36", "92", "582", "92", "-1", ""],
    ["4", "1", "1", "1", "1", "0", "36", "92", "582", "36", "-1", ""],
    ["5", "1", "1", "1", "1", "1", "36", "92", "96", "36", "95.5", "Hello"],
    ["5", "1", "1", "1", "1", "2", "140", "92", "120", "36", "93.1", "world"],
    ["4", "1", "1", "1", "2", "0", "36", "140", "300", "36", "-1", ""],
    ["5", "1", "1", "1", "2", "1", "36", "140", "200", "36", "90", "Second"],
    ["2", "1", "2", "0", "0", "0", "36", "300", "80", "30", "-1", ""],
    ["3", "1", "2", "1", "0", "0", "36", "300", "80", "30", "-1", ""],
    ["4", "1", "2", "1", "1", "0", "36", "300", "80", "30", "-1", ""],
    ["5", "1", "2", "1", "1", "1", "36", "300", "80", "30", "88", "Block"],
]


def make_tsv(rows: list[list[str]]) -> str:
    return "\n".join("\t".join(row) for row in [TSV_HEADER] + rows) + "\n"


SAMPLE_TSV = make_tsv(TSV_ROWS)
SAMPLE_TEXT = "Hello world\nSecond\n\nBlock"


UPLOAD_PREFIX = re.compile(r"^[0-9a-f]{32}_")


def _client_name(path: str) -> str:
    """Имя файла без уникального префикса загрузки."""
    return UPLOAD_PREFIX.sub("", Path(path).name)


class FakeEngine:
    def __init__(self, factory: "FakeEngineFactory") -> None:
        self._factory = factory

    async def recognize(self, path: str) -> RecognitionOutput:
        factory = self._factory
        if factory.gate is not None:
            while not factory.gate.is_set():
                await asyncio.sleep(0.005)
        if factory.delay:
            await asyncio.sleep(factory.delay)

        factory.recognized.append(path)
        if factory.echo_files:
            return RecognitionOutput(text=Path(path).read_text(), tsv=make_tsv([]))
        result = factory.results.get(_client_name(path), factory.default)
        if isinstance(result, BaseException):
            raise result
        return result


class FakeEngineFactory:
    """
    Подменная фабрика движков.

    Результат выбирается по имени файла, иначе default.
    С echo_files текстом результата становится содержимое файла.
    Считает одновременно открытые движки.
    """

    def __init__(
        self,
        results: Optional[dict[str, Union[RecognitionOutput, BaseException]]] = None,
        default: Union[RecognitionOutput, BaseException, None] = None,
        delay: float = 0.0,
        gate: Optional[threading.Event] = None,
        init_error: Optional[BaseException] = None,
        echo_files: bool = False,
    ) -> None:
        self.results = results or {}
        self.default = default or RecognitionOutput(text=SAMPLE_TEXT, tsv=SAMPLE_TSV)
        self.delay = delay
        self.gate = gate
        self.init_error = init_error
        self.echo_files = echo_files
        self.acquired = 0
        self.released = 0
        self.active = 0
        self.max_active = 0
        self.languages: list[str] = []
        self.recognized: list[str] = []

    @asynccontextmanager
    async def __call__(self, language: str):
        self.languages.append(language)
        self.acquired += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if self.init_error is not None:
                raise self.init_error
            yield FakeEngine(self)
        finally:
            self.active -= 1
            self.released += 1


@pytest.fixture()
def sample_tsv() -> str:
    return SAMPLE_TSV


@pytest.fixture()
def engine_factory() -> FakeEngineFactory:
    return FakeEngineFactory()


@pytest.fixture()
def failing_init_factory() -> FakeEngineFactory:
    return FakeEngineFactory(init_error=EngineInitError("Нет языковой модели Tesseract: eng"))


@pytest.fixture()
def store() -> InMemoryJobStore:
    return InMemoryJobStore(ttl_seconds=3600, max_jobs=100)


@pytest.fixture()
def images(tmp_path: Path) -> list[ImageDescriptor]:
    return [
        ImageDescriptor(filename=name, path=str(tmp_path / name))
        for name in ("a.png", "b.png", "c.png")
    ]
