"""Tests that render synthesized previews in headless Chromium."""

import pytest

from document_synthesizer import synthesize_document
from models import ProjectFile

sync_api = pytest.importorskip("playwright.sync_api")

# Evaluated in the host page; `doc` is the preview frame's document
FRAME_EXPRESSION = "() => {{ const doc = document.getElementById('preview-frame').contentDocument; return {}; }}"

INJECTED_PATHS = (
    "Array.from(doc.querySelectorAll('style[data-path], script[data-path]'))"
    ".map(e => e.tagName.toLowerCase() + ':' + e.getAttribute('data-path'))"
)


@pytest.fixture(scope="module")
def browser():
    """Headless Chromium shared by the module."""
    with sync_api.sync_playwright() as playwright:
        try:
            browser = playwright.chromium.launch(headless=True)
        except sync_api.Error as e:
            pytest.skip(f"Chromium is not installed: {e}")
        yield browser
        browser.close()


@pytest.fixture
def page(browser):
    page = browser.new_page()
    yield page
    page.close()


def render(page, project, file_set):
    """Load the preview page and wait for the bootstrap to fill the frame."""
    page.set_content(synthesize_document(project, file_set))
    page.wait_for_selector('#preview-frame[data-injected="true"]', state="attached", timeout=5000)


def in_frame(page, expression):
    return page.evaluate(FRAME_EXPRESSION.format(expression))


class TestPlainPreview:
    """Markup, styles and scripts injected into the sandboxed frame."""

    def test_hello_scenario(self, page, plain_project, hello_file_set):
        render(page, plain_project, hello_file_set)

        assert in_frame(page, "doc.getElementById('x').textContent") == "hi"
        assert in_frame(page, "doc.defaultView.getComputedStyle(doc.body).color") == "rgb(255, 0, 0)"

    @pytest.mark.parametrize("n_styles,n_scripts", [(1, 3), (3, 1), (4, 4)])
    def test_styles_then_scripts_in_file_set_order(self, page, plain_project, n_styles, n_scripts):
        files = [ProjectFile(path="index.html", content="<main></main>")]
        files += [ProjectFile(path=f"j{i}.js", content=f"(window.order = window.order || []).push({i});")
                  for i in range(n_scripts)]
        files += [ProjectFile(path=f"s{i}.css", content=f".c{i} {{ margin: {i}px; }}") for i in range(n_styles)]

        render(page, plain_project, files)

        assert in_frame(page, INJECTED_PATHS) == (
            [f"style:s{i}.css" for i in range(n_styles)] + [f"script:j{i}.js" for i in range(n_scripts)]
        )
        assert in_frame(page, "doc.defaultView.order") == list(range(n_scripts))

    def test_injection_runs_once(self, page, plain_project):
        files = [
            ProjectFile(path="index.html", content="<p>once</p>"),
            ProjectFile(path="count.js", content="parent.__injections = (parent.__injections || 0) + 1;"),
        ]

        render(page, plain_project, files)
        page.wait_for_timeout(300)

        assert page.evaluate("() => window.__injections") == 1
        assert in_frame(page, "doc.querySelectorAll('script[data-path]').length") == 1

    def test_missing_markup_uses_fallback_shell(self, page, plain_project):
        files = [ProjectFile(path="main.js", content="document.getElementById('root').textContent = 'from script';")]

        render(page, plain_project, files)

        assert in_frame(page, "doc.getElementById('root').textContent") == "from script"

    def test_empty_file_set(self, page, plain_project):
        render(page, plain_project, [])

        assert in_frame(page, "doc.getElementById('root') !== null")
        assert in_frame(page, INJECTED_PATHS) == []

    def test_script_content_with_closing_tag(self, page, plain_project):
        files = [ProjectFile(path="msg.js", content="window.msg = '</script><!-- done';")]

        render(page, plain_project, files)

        assert in_frame(page, "doc.defaultView.msg") == "</script><!-- done"

    def test_header_shows_project_name(self, page, plain_project, hello_file_set):
        render(page, plain_project, hello_file_set)

        assert page.text_content(".preview-title") == "Hello Site"
