"""Постановка задач и случайная выборка из корпуса примеров."""

import random
from collections import Counter
from pathlib import Path

import pytest
from conftest import FakeEngineFactory

from ocr_jobs.exceptions import EmptyCorpusError
from ocr_jobs.schemas import RecordStatus
from ocr_jobs.services.image_processor import ImageProcessor
from ocr_jobs.services.job_store import InMemoryJobStore
from ocr_jobs.services.job_submitter import (
    JobSubmitter,
    list_corpus,
    pick_sample,
    shuffle_in_place,
)


def _submitter(
    store: InMemoryJobStore,
    factory: FakeEngineFactory,
    examples_dir: Path,
    rng: random.Random = None,
) -> tuple[JobSubmitter, ImageProcessor]:
    processor = ImageProcessor(store, language="eng", max_concurrency=4, engine_factory=factory)
    submitter = JobSubmitter(store, processor, examples_dir, sample_size=10, rng=rng or random.Random(7))
    return submitter, processor


def _make_corpus(directory: Path, count: int) -> list[str]:
    directory.mkdir(parents=True, exist_ok=True)
    names = [f"example_{i:02d}.png" for i in range(count)]
    for name in names:
        (directory / name).write_bytes(b"\x89PNG")
    return names


class TestShuffle:
    def test_is_permutation(self) -> None:
        items = list(range(20))
        shuffled = shuffle_in_place(list(items), random.Random(1))
        assert sorted(shuffled) == items

    def test_permutations_are_uniform(self) -> None:
        rng = random.Random(42)
        counts = Counter(tuple(shuffle_in_place(["a", "b", "c"], rng)) for _ in range(6000))

        assert len(counts) == 6
        for count in counts.values():
            assert 850 < count < 1150

    def test_sample_is_distinct(self) -> None:
        rng = random.Random(3)
        for _ in range(100):
            sample = pick_sample(list(range(25)), 10, rng)
            assert len(sample) == 10
            assert len(set(sample)) == 10

    def test_sample_selection_is_uniform(self) -> None:
        rng = random.Random(11)
        counts = Counter()
        for _ in range(2000):
            counts.update(pick_sample(list(range(20)), 10, rng))

        # Ожидание: 2000 * 10 / 20 = 1000 на каждый элемент
        assert set(counts) == set(range(20))
        for count in counts.values():
            assert 850 < count < 1150

    def test_small_corpus_returns_everything(self) -> None:
        assert sorted(pick_sample(["x", "y", "z"], 10, random.Random(0))) == ["x", "y", "z"]

    def test_source_list_untouched(self) -> None:
        items = list(range(15))
        pick_sample(items, 10, random.Random(0))
        assert items == list(range(15))


class TestListCorpus:
    def test_skips_hidden_files_and_directories(self, tmp_path: Path) -> None:
        names = _make_corpus(tmp_path, 3)
        (tmp_path / ".DS_Store").write_bytes(b"")
        (tmp_path / "nested").mkdir()

        assert list_corpus(tmp_path) == names

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert list_corpus(tmp_path / "missing") == []


class TestSubmit:
    @pytest.mark.asyncio
    async def test_job_created_before_return(self, store, engine_factory, images, tmp_path) -> None:
        submitter, processor = _submitter(store, engine_factory, tmp_path)

        response = submitter.submit(images)

        records = store.get(response.job_id).records
        assert len(records) == len(images)
        assert [r.filename for r in records] == [i.filename for i in images]
        assert all(r.status == RecordStatus.PROCESSING for r in records)
        assert response.images == images

        await processor.drain()
        assert all(r.status == RecordStatus.DONE for r in store.get(response.job_id).records)

    @pytest.mark.asyncio
    async def test_response_uses_camel_case_keys(self, store, engine_factory, images, tmp_path) -> None:
        submitter, processor = _submitter(store, engine_factory, tmp_path)

        data = submitter.submit(images[:1]).model_dump(mode="json", by_alias=True)

        assert set(data) == {"images", "jobId"}
        assert data["images"] == [{"filename": "a.png", "storagePath": images[0].path}]
        await processor.drain()


class TestSubmitSample:
    @pytest.mark.asyncio
    async def test_ten_distinct_files(self, store, engine_factory, tmp_path) -> None:
        examples = tmp_path / "examples"
        names = _make_corpus(examples, 15)
        submitter, processor = _submitter(store, engine_factory, examples)

        response = await submitter.submit_sample()

        filenames = [image.filename for image in response.images]
        assert len(filenames) == 10
        assert len(set(filenames)) == 10
        assert set(filenames) <= set(names)
        assert all(Path(image.path).parent == examples for image in response.images)

        await processor.drain()
        assert sorted(Path(p).name for p in engine_factory.recognized) == sorted(filenames)

    @pytest.mark.asyncio
    async def test_empty_corpus(self, store, engine_factory, tmp_path) -> None:
        submitter, _ = _submitter(store, engine_factory, tmp_path / "examples")

        with pytest.raises(EmptyCorpusError):
            await submitter.submit_sample()
        assert len(store) == 0
