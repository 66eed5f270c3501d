"""FlatWiki FastAPI application."""

import logging
from pathlib import Path
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, FastAPI, Form, Request, status
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from flatwiki.config import Settings, settings as default_settings
from flatwiki.core.auth import require_basic_auth
from flatwiki.core.models import Page, PageNameError
from flatwiki.core.parser import ContentParser
from flatwiki.core.storage import FileStorage

logger = logging.getLogger(__name__)

MISSING_PAGE_TEXT = "Page does not exist. Click on the button above to create it."

# Setup templates and static files
templates_path = Path(__file__).parent / "templates"
static_path = Path(__file__).parent / "static"

templates = Jinja2Templates(directory=str(templates_path))

router = APIRouter()


# Template context helper
def get_context(request: Request, **kwargs) -> dict:
    """Create base context for templates."""
    settings = request.app.state.settings
    return {
        "request": request,
        "app_title": settings.app_title,
        "main_page": settings.main_page,
        "all_page": settings.all_page,
        "terms": "",
        **kwargs,
    }


def render(request: Request, template: str, **kwargs) -> HTMLResponse:
    return templates.TemplateResponse(request, template, get_context(request, **kwargs))


def edit_url(name: str) -> str:
    return "/edit?" + urlencode({"page": name})


def redirect(url: str, request: Request) -> RedirectResponse:
    """Redirect with 302 after reads and 303 after PUT/POST/DELETE."""
    code = status.HTTP_302_FOUND
    if request.method != "GET":
        code = status.HTTP_303_SEE_OTHER
    return RedirectResponse(url=url, status_code=code)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage


def get_parser(request: Request) -> ContentParser:
    return request.app.state.parser


@router.get("/", response_class=HTMLResponse)
@router.get("/show", response_class=HTMLResponse)
async def show(
    request: Request,
    page: str | None = None,
    settings: Settings = Depends(get_settings),
    storage: FileStorage = Depends(get_storage),
    parse: ContentParser = Depends(get_parser),
):
    """View a page; the main page when none is given."""
    name = Page.from_param(page or settings.main_page).name
    if name == settings.all_page:
        return redirect("/show_all", request)

    wiki_page = await storage.get_page(name)
    if wiki_page.exists:
        content, terms = wiki_page.content, ""
    else:
        # Prefill the search box so the page can be created from there
        content, terms = MISSING_PAGE_TEXT, wiki_page.name

    return render(
        request,
        "page/show.html",
        page=wiki_page,
        content=content,
        parsed_content=parse(content),
        terms=terms,
    )


@router.get("/show_all", response_class=HTMLResponse)
async def show_all(
    request: Request,
    settings: Settings = Depends(get_settings),
    storage: FileStorage = Depends(get_storage),
):
    """List every page except the main page."""
    all_pages = await storage.list_pages(exclude={settings.main_page, settings.all_page})
    return render(
        request,
        "page/list.html",
        all_pages=[Page(name=name) for name in all_pages],
    )


@router.get("/edit", response_class=HTMLResponse)
async def edit(
    request: Request,
    page: str,
    settings: Settings = Depends(get_settings),
    storage: FileStorage = Depends(get_storage),
    parse: ContentParser = Depends(get_parser),
):
    """Edit page form. Missing pages start out empty."""
    name = Page.from_param(page).name
    if name == settings.all_page:
        return redirect("/show_all", request)

    wiki_page = await storage.get_page(name)
    content = wiki_page.content or ""
    return render(
        request,
        "page/edit.html",
        page=wiki_page,
        content=content,
        parsed_content=parse(content),
    )


@router.api_route("/preview", methods=["PUT", "POST"], response_class=HTMLResponse)
async def preview(
    request: Request,
    page: str = Form(""),
    content: str = Form(""),
    settings: Settings = Depends(get_settings),
    parse: ContentParser = Depends(get_parser),
):
    """Render unsaved content in the edit view."""
    wiki_page = Page.from_param(page, content=content)
    if wiki_page.name == settings.all_page:
        return redirect("/show_all", request)

    return render(
        request,
        "page/edit.html",
        page=wiki_page,
        content=content,
        parsed_content=parse(content),
    )


@router.api_route("/update", methods=["PUT", "POST"])
async def update(
    request: Request,
    page: str = Form(""),
    content: str = Form(""),
    settings: Settings = Depends(get_settings),
    storage: FileStorage = Depends(get_storage),
):
    """Save page content and go back to the page."""
    name = Page.from_param(page).name
    if name == settings.all_page:
        return redirect("/show_all", request)

    saved = await storage.save_page(name, content)
    return redirect(saved.url, request)


@router.api_route("/destroy", methods=["DELETE", "POST"])
async def destroy(
    request: Request,
    page: str,
    settings: Settings = Depends(get_settings),
    storage: FileStorage = Depends(get_storage),
):
    """Delete a page. The main page is never removed."""
    name = Page.from_param(page).name
    if name == settings.all_page:
        return redirect("/show_all", request)
    if name == settings.main_page:
        logger.warning("Refusing to delete main page %s", name)
        return redirect("/", request)

    await storage.delete_page(name)
    return redirect("/", request)


@router.get("/search", response_class=HTMLResponse)
async def search(
    request: Request,
    terms: str = "",
    commit: str | None = None,
    storage: FileStorage = Depends(get_storage),
    parse: ContentParser = Depends(get_parser),
):
    """Search pages, or jump to creating a page named after the terms."""
    terms = terms.strip()
    if commit == "Create":
        return redirect(edit_url(Page.from_param(terms).name), request)

    results = await storage.search_pages(terms)
    top_page = None
    parsed_content = ""
    if results:
        top_page = await storage.get_page(results[0]["name"])
        parsed_content = parse(top_page.content or "")

    return render(
        request,
        "search.html",
        terms=terms,
        page=top_page,
        parsed_content=parsed_content,
        results=results[1:],
    )


async def page_name_error_handler(request: Request, exc: PageNameError) -> PlainTextResponse:
    logger.warning("Bad page name on %s: %s", request.url.path, exc)
    return PlainTextResponse(str(exc), status_code=status.HTTP_400_BAD_REQUEST)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application around one settings object.

    Storage and the content parser are created here and shared through
    ``app.state``; every route requires basic auth.
    """
    settings = settings or default_settings
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title=settings.app_title, debug=settings.debug)
    app.state.settings = settings
    app.state.storage = FileStorage(settings.data_dir)
    app.state.parser = ContentParser(
        settings, page_exists=app.state.storage.page_exists
    )

    app.mount("/static", StaticFiles(directory=str(static_path)), name="static")
    app.include_router(router, dependencies=[Depends(require_basic_auth)])
    app.add_exception_handler(PageNameError, page_name_error_handler)

    logger.info(
        "%s serving pages from %s (parser: %s)",
        settings.app_title,
        settings.data_dir,
        app.state.parser.mode.value,
    )
    return app


app = create_app()
