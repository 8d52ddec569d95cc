"""Shared test fixtures for the PlanForge test suite.

Builds configs with zero delays, temp-dir stores, and in-memory .docx/.xlsx
payloads so no test touches the real data directory or the network.
"""

import io
import zipfile
from xml.sax.saxutils import escape

import pytest

from src.config import PlanForgeConfig
from src.memory.documents import DocumentRepository
from src.memory.store import KeyValueStore

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SOCCER_PLAN_TEXT = """\
U12 Soccer Training Plan
This program develops ball control and passing for young players over four weeks.
Each session lasts 60 minutes and focuses on technique and teamwork.

Week 1
Monday 17:30 - Warm-up 10 minutes, passing drills in pairs, small-sided games
Wednesday - Technical drills: dribbling slalom, first touch. 60 minutes
Week 2
Monday - Passing triangles, conditioning games 45-60 minutes
Thursday - Shooting practice and cool-down stretching
Week 3
Tuesday - Session 5: positioning and pressing, 1.5 hours
Week 4
Saturday - Match day, 90 minutes
"""


def make_docx(paragraphs: list[str]) -> bytes:
    """Minimal .docx container with one w:p per paragraph."""
    body = "".join(
        f'<w:p><w:r><w:t xml:space="preserve">{escape(p)}</w:t></w:r></w:p>' for p in paragraphs
    )
    document = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        f"<w:body>{body}</w:body></w:document>"
    )
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        archive.writestr("[Content_Types].xml", "<Types/>")
        archive.writestr("word/document.xml", document)
    return buf.getvalue()


def make_xlsx(rows: list[list], title: str = "Plan") -> bytes:
    import openpyxl

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture
def config(tmp_path):
    return PlanForgeConfig(
        data_dir=tmp_path / "data",
        api_key=None,
        remote_delay=0.0,
        batch_delay=0.0,
        cooldown=60.0,
        init_timeout=5.0,
        remote_timeout=5.0,
        remote_connection_check=False,
    )


@pytest.fixture
def store(config):
    return KeyValueStore(config.data_dir)


@pytest.fixture
def repository(store):
    return DocumentRepository(store)


@pytest.fixture
def soccer_text():
    return SOCCER_PLAN_TEXT


@pytest.fixture
def docx_factory():
    return make_docx


@pytest.fixture
def xlsx_factory():
    return make_xlsx
