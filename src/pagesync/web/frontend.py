"""Static HTML pages: the text panel and the popup PDF viewer."""

from __future__ import annotations

from importlib.resources import files

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

router = APIRouter()


def _load_template(name: str) -> str:
    template = files("pagesync.web").joinpath("templates").joinpath(name)
    return template.read_text(encoding="utf-8")


@router.get("/", response_class=HTMLResponse)
async def index() -> HTMLResponse:
    return HTMLResponse(content=_load_template("index.html"))


@router.get("/pdf-viewer.html", response_class=HTMLResponse)
async def pdf_viewer() -> HTMLResponse:
    return HTMLResponse(content=_load_template("viewer.html"))
