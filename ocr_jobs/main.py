"""
OCR Jobs Service — FastAPI приложение.

Принимает пакет изображений, ставит задачу распознавания и сразу
отвечает 202 с id задачи. Распознавание идёт в фоне, клиент опрашивает
состояние задачи.

Эндпоинты:
    POST /api/assets — загрузка изображений (multipart, поле userFiles)
    GET  /api/random — задача на случайные файлы из каталога примеров
    GET  /jobs/{job_id} — записи задачи (по одной на изображение)
    GET  /jobs/{job_id}/summary — сводный статус задачи
    GET  /jobs/stats — статистика хранилища задач
    GET  /health — проверка работоспособности

Запуск:
    uvicorn ocr_jobs.main:app --host 0.0.0.0 --port 3434
"""

import json
import logging
import os
import shutil
import uuid
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path
from typing import BinaryIO, Optional

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from ocr_jobs.config import Settings, settings
from ocr_jobs.exceptions import EmptyCorpusError, UnknownJobError
from ocr_jobs.schemas import ImageDescriptor, Job, JobSummary, SubmissionResponse
from ocr_jobs.services.image_processor import ImageProcessor
from ocr_jobs.services.job_store import InMemoryJobStore
from ocr_jobs.services.job_submitter import JobSubmitter
from ocr_jobs.services.ocr_engine import EngineFactory, open_engine
from ocr_jobs.services.retention_sweeper import RetentionSweeper

# Настройка логгера
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [OCR-Jobs] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


class UnicodeJSONResponse(JSONResponse):
    """JSON ответ с нормальным отображением кириллицы (без \\uXXXX экранирования)."""

    def render(self, content) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            indent=None,
            separators=(",", ":"),
        ).encode("utf-8")


router = APIRouter()


# =============================================================================
# Зависимости
# =============================================================================


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> InMemoryJobStore:
    return request.app.state.store


def get_processor(request: Request) -> ImageProcessor:
    return request.app.state.processor


def get_submitter(request: Request) -> JobSubmitter:
    return request.app.state.submitter


# =============================================================================
# Эндпоинты
# =============================================================================


@router.get("/health")
async def health_check(
    app_settings: Settings = Depends(get_settings),
    store: InMemoryJobStore = Depends(get_store),
    processor: ImageProcessor = Depends(get_processor),
) -> dict:
    """
    Проверка работоспособности сервиса.

    Проверяет доступность Tesseract и возвращает текущую конфигурацию
    и загрузку.

    Returns:
        dict: статус сервиса и информация о системе
    """
    tesseract_ok = False
    tesseract_version = "unknown"
    try:
        import pytesseract
        tesseract_version = str(pytesseract.get_tesseract_version())
        tesseract_ok = True
    except Exception as e:
        tesseract_version = f"error: {e}"

    return {
        "status": "ok" if tesseract_ok else "degraded",
        "service": "ocr-jobs",
        "version": "1.0.0",
        "cpu_count": os.cpu_count(),
        "tesseract": {
            "available": tesseract_ok,
            "version": tesseract_version,
        },
        "jobs": {
            "stored": len(store),
            "images_in_flight": processor.in_flight,
        },
        "config": {
            "language": app_settings.language,
            "max_concurrent_images": app_settings.max_concurrent_images,
            "task_timeout_seconds": app_settings.task_timeout_seconds,
            "retention_hours": app_settings.retention_hours,
            "sweep_interval_minutes": app_settings.sweep_interval_minutes,
        },
    }


@router.post("/api/assets", status_code=202, response_model=SubmissionResponse)
async def upload_assets(
    user_files: Optional[list[UploadFile]] = File(
        None, alias="userFiles", description="Изображения для распознавания"
    ),
    app_settings: Settings = Depends(get_settings),
    submitter: JobSubmitter = Depends(get_submitter),
) -> SubmissionResponse:
    """
    Принимает изображения и ставит задачу распознавания.

    Каждый файл сохраняется в каталог загрузок под уникальным именем
    (storagePath), в записи задачи остаётся исходное имя клиента.
    Ответ отправляется сразу, ошибки распознавания видны только
    при опросе задачи.

    Returns:
        SubmissionResponse: {images, jobId}

    Raises:
        HTTPException: 400 если файлов нет или у файла недопустимое имя
    """
    if not user_files:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "no_files",
                "message": "Не передано ни одного файла в поле userFiles",
            },
        )

    # Все имена проверяются до сохранения первого файла
    filenames = [_client_filename(upload) for upload in user_files]

    uploads_dir = Path(app_settings.uploads_dir)
    images = []
    for upload, filename in zip(user_files, filenames):
        images.append(await _save_upload(upload, filename, uploads_dir))

    logger.info(f"Получено файлов: {len(images)}")
    return submitter.submit(images)


@router.get("/api/random", status_code=202, response_model=SubmissionResponse)
async def submit_random(
    submitter: JobSubmitter = Depends(get_submitter),
) -> SubmissionResponse:
    """
    Ставит задачу на случайную выборку из каталога примеров.

    Raises:
        HTTPException: 404 если каталог примеров пуст
    """
    try:
        return await submitter.submit_sample()
    except EmptyCorpusError as e:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "empty_corpus",
                "message": str(e),
            },
        )


@router.get("/jobs/stats")
async def get_jobs_stats(store: InMemoryJobStore = Depends(get_store)) -> dict:
    """
    Статистика хранилища задач.

    Полезно для мониторинга использования памяти.
    """
    return store.stats()


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, store: InMemoryJobStore = Depends(get_store)) -> list[dict]:
    """
    Текущее состояние задачи: по записи на изображение, в порядке постановки.

    Raises:
        HTTPException: 404 если задача не найдена
    """
    job = _require_job(store, job_id)
    return [record.model_dump(mode="json") for record in job.records]


@router.get("/jobs/{job_id}/summary", response_model=JobSummary)
async def get_job_summary(job_id: str, store: InMemoryJobStore = Depends(get_store)) -> JobSummary:
    """
    Сводный статус задачи: processing | completed | partial | failed.

    Raises:
        HTTPException: 404 если задача не найдена
    """
    return _require_job(store, job_id).summary()


def _require_job(store: InMemoryJobStore, job_id: str) -> Job:
    try:
        return store.require(job_id)
    except UnknownJobError as e:
        logger.warning(f"Задача не найдена: {job_id}")
        raise HTTPException(
            status_code=404,
            detail={
                "error": "job_not_found",
                "message": f"{e}. Возможно, задача истекла или сервис был перезапущен.",
            },
        )


def _client_filename(upload: UploadFile) -> str:
    """
    Имя файла клиента без пути.

    Raises:
        HTTPException: 400 если имя пустое, "." или ".."
    """
    filename = Path(upload.filename or "").name
    if filename in ("", ".", ".."):
        raise HTTPException(
            status_code=400,
            detail={
                "error": "invalid_filename",
                "message": f"Недопустимое имя загруженного файла: {upload.filename!r}",
            },
        )
    return filename


async def _save_upload(upload: UploadFile, filename: str, uploads_dir: Path) -> ImageDescriptor:
    """
    Сохраняет загруженный файл в каталог загрузок.

    Префикс uuid не даёт одноимённым загрузкам разных задач
    перезаписать друг друга до распознавания.
    """
    destination = uploads_dir / f"{uuid.uuid4().hex}_{filename}"
    await run_in_threadpool(_copy_to, upload.file, destination)
    return ImageDescriptor(filename=filename, path=str(destination))


def _copy_to(source: BinaryIO, destination: Path) -> None:
    with open(destination, "wb") as target:
        shutil.copyfileobj(source, target)


# =============================================================================
# Приложение
# =============================================================================


def create_app(
    app_settings: Optional[Settings] = None,
    engine_factory: Optional[EngineFactory] = None,
) -> FastAPI:
    """
    Собирает приложение.

    Args:
        app_settings: настройки (по умолчанию глобальные из .env)
        engine_factory: фабрика движков OCR (по умолчанию Tesseract)

    Returns:
        FastAPI: приложение с запуском сервисов в lifespan
    """
    cfg = app_settings or settings
    factory = engine_factory or partial(
        open_engine,
        oem=cfg.ocr_oem,
        psm=cfg.ocr_psm,
        timeout=cfg.task_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        uploads_dir = Path(cfg.uploads_dir)
        uploads_dir.mkdir(parents=True, exist_ok=True)

        store = InMemoryJobStore(ttl_seconds=cfg.job_ttl_seconds, max_jobs=cfg.max_jobs)
        processor = ImageProcessor(
            store,
            language=cfg.language,
            max_concurrency=cfg.max_concurrent_images,
            task_timeout=cfg.task_timeout_seconds,
            engine_factory=factory,
        )
        sweeper = RetentionSweeper(
            uploads_dir,
            retention_seconds=cfg.retention_hours * 60 * 60,
            interval_seconds=cfg.sweep_interval_minutes * 60,
        )

        app.state.settings = cfg
        app.state.store = store
        app.state.processor = processor
        app.state.submitter = JobSubmitter(
            store,
            processor,
            examples_dir=Path(cfg.examples_dir),
            sample_size=cfg.sample_size,
        )

        sweeper.start()
        logger.info(
            f"Сервис запущен: язык {cfg.language}, "
            f"параллельно до {cfg.max_concurrent_images} изображений"
        )
        try:
            yield
        finally:
            await sweeper.stop()
            await processor.shutdown()
            logger.info("Сервис остановлен")

    app = FastAPI(
        title="OCR Jobs Service",
        description="Пакетное распознавание текста на изображениях (Tesseract OCR)",
        version="1.0.0",
        default_response_class=UnicodeJSONResponse,
        lifespan=lifespan,
    )
    app.include_router(router)

    # Статика: загрузки пользователей и примеры
    app.mount("/uploads", StaticFiles(directory=cfg.uploads_dir, check_dir=False), name="uploads")
    app.mount("/examples", StaticFiles(directory=cfg.examples_dir, check_dir=False), name="examples")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Запуск OCR Jobs Service на {settings.host}:{settings.port}")
    logger.info(f"CPU ядер: {os.cpu_count()}")

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="info",
    )
