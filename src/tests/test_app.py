"""End-to-end tests for the FlatWiki routes.

Each test builds a fresh app around a temp page directory holding a main
page and one ordinary page, and talks to it over ASGI with basic auth.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from flatwiki.config import Settings
from flatwiki.core.models import ParserMode
from flatwiki.main import MISSING_PAGE_TEXT, create_app

CREDENTIALS = ("user", "password")


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        _env_file=None,
        data_dir=tmp_path,
        main_page="Main_page",
        all_page="All_pages",
        parser="mediawiki",
        username="user",
        password="password",
    )


@pytest.fixture()
def wiki_app(settings, tmp_path):
    (tmp_path / "Page").write_text("unparsed content", encoding="utf-8")
    (tmp_path / "Main_page").write_text("unparsed main content", encoding="utf-8")
    return create_app(settings)


@pytest_asyncio.fixture()
async def client(wiki_app):
    """Authenticated client that does NOT follow redirects."""
    transport = ASGITransport(app=wiki_app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        auth=CREDENTIALS,
        follow_redirects=False,
    ) as c:
        yield c


@pytest_asyncio.fixture()
async def anonymous(wiki_app):
    transport = ASGITransport(app=wiki_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ============================================================
# show
# ============================================================


class TestShow:
    @pytest.mark.asyncio
    async def test_main_page_by_default(self, client):
        resp = await client.get("/")
        assert resp.status_code == 200
        assert 'data-page="Main_page"' in resp.text
        assert '<h1 class="page-title">Main page</h1>' in resp.text
        assert "<p>unparsed main content</p>" in resp.text

    @pytest.mark.asyncio
    async def test_show_without_page_param(self, client):
        resp = await client.get("/show")
        assert resp.status_code == 200
        assert 'data-page="Main_page"' in resp.text

    @pytest.mark.asyncio
    async def test_any_page(self, client):
        resp = await client.get("/show", params={"page": "Page"})
        assert resp.status_code == 200
        assert 'data-page="Page"' in resp.text
        assert '<h1 class="page-title">Page</h1>' in resp.text
        assert "<p>unparsed content</p>" in resp.text

    @pytest.mark.asyncio
    async def test_page_with_spaces(self, client):
        resp = await client.get("/show", params={"page": "Page with spaces"})
        assert resp.status_code == 200
        assert 'data-page="Page_with_spaces"' in resp.text
        assert '<h1 class="page-title">Page with spaces</h1>' in resp.text

    @pytest.mark.asyncio
    async def test_unexisting_page(self, client):
        resp = await client.get("/show", params={"page": "unexisting"})
        assert resp.status_code == 200
        assert 'data-page="unexisting"' in resp.text
        assert f"<p>{MISSING_PAGE_TEXT}</p>" in resp.text
        # Search box is prefilled so the page can be created
        assert 'name="terms" value="unexisting"' in resp.text

    @pytest.mark.asyncio
    async def test_all_pages_name_redirects_to_listing(self, client):
        resp = await client.get("/show", params={"page": "All_pages"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/show_all"

    @pytest.mark.asyncio
    async def test_unsafe_page_name_rejected(self, client):
        resp = await client.get("/show", params={"page": "../secret"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_markdown_mode(self, client, settings, tmp_path):
        (tmp_path / "Doc").write_text("## Title", encoding="utf-8")
        settings.parser = ParserMode.MARKDOWN
        resp = await client.get("/show", params={"page": "Doc"})
        assert '<h2 id="title">Title</h2>' in resp.text

    @pytest.mark.asyncio
    async def test_mediawiki_mode(self, client, tmp_path):
        (tmp_path / "Doc").write_text("== Title ==", encoding="utf-8")
        resp = await client.get("/show", params={"page": "Doc"})
        assert "<h2>Title</h2>" in resp.text


# ============================================================
# show_all
# ============================================================


class TestShowAll:
    @pytest.mark.asyncio
    async def test_lists_pages_except_main(self, client):
        resp = await client.get("/show_all")
        assert resp.status_code == 200
        assert 'href="/show?page=Page"' in resp.text
        assert 'href="/show?page=Main_page"' not in resp.text

    @pytest.mark.asyncio
    async def test_empty_listing(self, client, tmp_path):
        (tmp_path / "Page").unlink()
        resp = await client.get("/show_all")
        assert "No pages yet" in resp.text


# ============================================================
# edit
# ============================================================


class TestEdit:
    @pytest.mark.asyncio
    async def test_not_allowed_to_edit_all(self, client):
        resp = await client.get("/edit", params={"page": "All_pages"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/show_all"

    @pytest.mark.asyncio
    async def test_opening_a_missing_page(self, client):
        resp = await client.get("/edit", params={"page": "Missing"})
        assert resp.status_code == 200
        assert '<textarea name="content" rows="20"></textarea>' in resp.text
        assert "Create Missing" in resp.text

    @pytest.mark.asyncio
    async def test_opening_the_page_for_edition(self, client):
        resp = await client.get("/edit", params={"page": "Page"})
        assert resp.status_code == 200
        assert '<textarea name="content" rows="20">unparsed content</textarea>' in resp.text
        assert "<p>unparsed content</p>" in resp.text

    @pytest.mark.asyncio
    async def test_content_is_escaped_in_textarea(self, client, tmp_path):
        (tmp_path / "Html").write_text("</textarea><b>", encoding="utf-8")
        resp = await client.get("/edit", params={"page": "Html"})
        assert "&lt;/textarea&gt;&lt;b&gt;" in resp.text


# ============================================================
# preview
# ============================================================


class TestPreview:
    @pytest.mark.asyncio
    async def test_preview_renders_edit_view(self, client):
        resp = await client.put(
            "/preview", data={"page": "Page", "content": "unparsed content"}
        )
        assert resp.status_code == 200
        assert "unparsed content</textarea>" in resp.text
        assert "<p>unparsed content</p>" in resp.text

    @pytest.mark.asyncio
    async def test_preview_does_not_save(self, client, tmp_path):
        resp = await client.put("/preview", data={"page": "Page", "content": "draft"})
        assert resp.status_code == 200
        assert "<p>draft</p>" in resp.text
        assert (tmp_path / "Page").read_text(encoding="utf-8") == "unparsed content"

    @pytest.mark.asyncio
    async def test_preview_via_post(self, client):
        resp = await client.post("/preview", data={"page": "New", "content": "== H =="})
        assert resp.status_code == 200
        assert "<h2>H</h2>" in resp.text

    @pytest.mark.asyncio
    async def test_preview_all_redirects(self, client):
        resp = await client.put("/preview", data={"page": "All_pages", "content": "x"})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/show_all"


# ============================================================
# update
# ============================================================


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_redirects_to_page(self, client):
        resp = await client.put("/update", data={"page": "Page", "content": "new text"})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/show?page=Page"

    @pytest.mark.asyncio
    async def test_update_writes_file(self, client, tmp_path):
        await client.put("/update", data={"page": "Page", "content": "new text"})
        assert (tmp_path / "Page").read_text(encoding="utf-8") == "new text"

        resp = await client.get("/show", params={"page": "Page"})
        assert "<p>new text</p>" in resp.text

    @pytest.mark.asyncio
    async def test_update_creates_page_with_spaces(self, client, tmp_path):
        resp = await client.post(
            "/update", data={"page": "Brand new", "content": "hello"}
        )
        assert resp.headers["location"] == "/show?page=Brand_new"
        assert (tmp_path / "Brand_new").read_text(encoding="utf-8") == "hello"

    @pytest.mark.asyncio
    async def test_update_rejects_hash_in_name(self, client, tmp_path):
        resp = await client.put("/update", data={"page": "C#1", "content": "x"})
        assert resp.status_code == 400
        assert not (tmp_path / "C#1").exists()

    @pytest.mark.asyncio
    async def test_update_all_is_refused(self, client, tmp_path):
        resp = await client.put("/update", data={"page": "All_pages", "content": "x"})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/show_all"
        assert not (tmp_path / "All_pages").exists()


# ============================================================
# destroy
# ============================================================


class TestDestroy:
    @pytest.mark.asyncio
    async def test_not_allowed_to_delete_main_page(self, client, tmp_path):
        resp = await client.delete("/destroy", params={"page": "Main_page"})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/"
        assert (tmp_path / "Main_page").exists()

    @pytest.mark.asyncio
    async def test_delete_a_page(self, client, tmp_path):
        resp = await client.delete("/destroy", params={"page": "Page"})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/"
        assert not (tmp_path / "Page").exists()

        resp = await client.get("/show", params={"page": "Page"})
        assert f"<p>{MISSING_PAGE_TEXT}</p>" in resp.text

    @pytest.mark.asyncio
    async def test_delete_via_post(self, client, tmp_path):
        resp = await client.post("/destroy", params={"page": "Page"})
        assert resp.status_code == 303
        assert not (tmp_path / "Page").exists()

    @pytest.mark.asyncio
    async def test_delete_missing_page(self, client):
        resp = await client.delete("/destroy", params={"page": "Nothing"})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/"

    @pytest.mark.asyncio
    async def test_delete_all_redirects_to_listing(self, client):
        resp = await client.delete("/destroy", params={"page": "All_pages"})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/show_all"


# ============================================================
# search
# ============================================================


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_for_terms(self, client):
        resp = await client.get("/search", params={"terms": "content"})
        assert resp.status_code == 200
        assert 'name="terms" value="content"' in resp.text
        assert 'class="page top-result" data-page="Main_page"' in resp.text
        assert "<p>unparsed main content</p>" in resp.text
        # The other match is listed below the top result
        assert 'href="/show?page=Page"' in resp.text

    @pytest.mark.asyncio
    async def test_title_match_ranks_first(self, client):
        resp = await client.get("/search", params={"terms": "page"})
        assert 'data-page="Main_page"' in resp.text

    @pytest.mark.asyncio
    async def test_open_a_new_page_for_creation(self, client):
        resp = await client.get("/search", params={"terms": "content", "commit": "Create"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/edit?page=content"

    @pytest.mark.asyncio
    async def test_create_uses_page_identifier(self, client):
        resp = await client.get(
            "/search", params={"terms": "New page", "commit": "Create"}
        )
        assert resp.headers["location"] == "/edit?page=New_page"

    @pytest.mark.asyncio
    async def test_no_results(self, client):
        resp = await client.get("/search", params={"terms": "zzzznotfound"})
        assert resp.status_code == 200
        assert "No pages found" in resp.text


# ============================================================
# basic auth
# ============================================================


REQUESTS = [
    ("GET", "/", None, None),
    ("GET", "/show", {"page": "Page"}, None),
    ("GET", "/show_all", None, None),
    ("GET", "/edit", {"page": "Page"}, None),
    ("PUT", "/preview", None, {"page": "Page"}),
    ("PUT", "/update", None, {"page": "Page", "content": "hacked"}),
    ("DELETE", "/destroy", {"page": "Page"}, None),
    ("GET", "/search", None, None),
]


class TestBasicAuth:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,url,params,data", REQUESTS)
    async def test_rejects_wrong_password(self, wiki_app, tmp_path, method, url, params, data):
        transport = ASGITransport(app=wiki_app)
        async with AsyncClient(
            transport=transport, base_url="http://test", auth=("user", "")
        ) as c:
            resp = await c.request(method, url, params=params, data=data)
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"].startswith("Basic")
        assert (tmp_path / "Page").read_text(encoding="utf-8") == "unparsed content"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,url,params,data", REQUESTS)
    async def test_rejects_missing_credentials(
        self, anonymous, tmp_path, method, url, params, data
    ):
        resp = await anonymous.request(method, url, params=params, data=data)
        assert resp.status_code == 401
        assert (tmp_path / "Page").exists()

    @pytest.mark.asyncio
    async def test_rejects_wrong_user(self, wiki_app):
        transport = ASGITransport(app=wiki_app)
        async with AsyncClient(
            transport=transport, base_url="http://test", auth=("admin", "password")
        ) as c:
            resp = await c.get("/")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_static_files_are_public(self, anonymous):
        resp = await anonymous.get("/static/style.css")
        assert resp.status_code == 200
