"""
Разбор TSV вывода Tesseract (image_to_data).

Формат: строка заголовка и по одной строке на каждый элемент иерархии
(документ -> страница -> блок -> параграф -> строка -> слово),
12 полей через табуляцию:
    level, page_num, block_num, par_num, line_num, word_num,
    left, top, width, height, conf, text

Сохраняются только строки уровня слова (level == "5").
"""

import logging
from dataclasses import dataclass, field

from ocr_jobs.exceptions import ParseDefect
from ocr_jobs.schemas import Word

logger = logging.getLogger(__name__)

WORD_LEVEL = "5"

TSV_FIELDS = (
    "level",
    "page_num",
    "block_num",
    "par_num",
    "line_num",
    "word_num",
    "left",
    "top",
    "width",
    "height",
    "conf",
    "text",
)


@dataclass
class AnnotationParseResult:
    """
    Результат разбора TSV.

    Attributes:
        words: слова в порядке строк TSV
        defects: строки уровня слова с неверным числом полей
    """

    words: list[Word] = field(default_factory=list)
    defects: list[ParseDefect] = field(default_factory=list)


def split_rows(tsv: str) -> list[tuple[int, list[str]]]:
    """
    Разбивает TSV на строки и поля.

    Пустые строки пропускаются, завершающий \\r отбрасывается.

    Returns:
        list: пары (номер_строки_с_1, поля)
    """
    rows = []
    for number, line in enumerate(tsv.split("\n"), start=1):
        line = line.rstrip("\r")
        if not line:
            continue
        rows.append((number, line.split("\t")))
    return rows


def filter_word_rows(
    rows: list[tuple[int, list[str]]],
) -> list[tuple[int, list[str]]]:
    """Оставляет только строки уровня слова, порядок сохраняется."""
    return [(number, fields) for number, fields in rows if fields[0] == WORD_LEVEL]


def parse_annotations(tsv: str) -> AnnotationParseResult:
    """
    Превращает TSV Tesseract в список слов.

    Строки уровня слова с числом полей, отличным от 12, не превращаются
    в Word: для каждой такой строки фиксируется ParseDefect.

    Args:
        tsv: TSV строка от pytesseract.image_to_data()

    Returns:
        AnnotationParseResult: слова и найденные дефекты
    """
    result = AnnotationParseResult()

    for number, fields in filter_word_rows(split_rows(tsv)):
        if len(fields) != len(TSV_FIELDS):
            result.defects.append(
                ParseDefect(number, len(fields), "\t".join(fields))
            )
            continue
        result.words.append(Word(**dict(zip(TSV_FIELDS, fields))))

    if result.defects:
        logger.warning(
            f"TSV: {len(result.defects)} некорректных строк пропущено "
            f"(первая: {result.defects[0]})"
        )

    return result


def assemble_text(words: list[Word]) -> str:
    """
    Собирает текст из слов с учётом структуры блоков/строк.

    Алгоритм:
        - Слова на одной строке соединяются пробелами
        - Разные строки в одном блоке — новая строка (\\n)
        - Разные блоки — пустая строка между ними (\\n\\n)

    Args:
        words: слова в порядке TSV

    Returns:
        str: собранный текст
    """
    blocks: list[list[str]] = []
    lines: list[str] = []
    current_words: list[str] = []
    current_block = None
    current_line = None

    for word in words:
        token = word.text.strip()
        if not token:  # Пропускаем пустые записи
            continue

        block_key = (word.page_num, word.block_num)
        line_key = block_key + (word.par_num, word.line_num)

        if line_key != current_line and current_words:
            lines.append(" ".join(current_words))
            current_words = []
        if block_key != current_block and lines:
            blocks.append(lines)
            lines = []

        current_block = block_key
        current_line = line_key
        current_words.append(token)

    if current_words:
        lines.append(" ".join(current_words))
    if lines:
        blocks.append(lines)

    return "\n\n".join("\n".join(block) for block in blocks)
