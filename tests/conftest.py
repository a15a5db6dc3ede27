"""
Shared fixtures for the scraper tests.

Network access is replaced by httpx.MockTransport and sleeps are recorded
instead of slept, so the suite runs offline and fast.
"""

import fitz  # PyMuPDF
import httpx
import pytest

from nap_scraper.config import AppConfig

SITE = "https://napcentral.org"
TABLE_URL = SITE + "/submitted-naps"


def make_pdf(path, pages):
    """Write a real PDF with one page per string in `pages`."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    doc.save(str(path))
    doc.close()
    return str(path)


def table_html(rows):
    """Submissions page; each row is a list of <td> inner HTML strings."""
    body = "".join(
        "<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>" for row in rows
    )
    return (
        "<html><body><table>"
        "<thead><tr><th>ID</th><th>Country</th><th>Region</th><th>LDC/SIDS</th>"
        "<th>NAP</th><th>Date Posted</th></tr></thead>"
        f"<tbody>{body}</tbody></table></body></html>"
    )


def nap_row(nap_id, country, links_html, region="Africa", marker="LDC", date="15 March 2021"):
    return [nap_id, country, region, marker, links_html, date]


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


class Router:
    """Serves canned responses per URL and counts requests.

    A list of responses is consumed in order; the last one repeats.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.hits = {}

    def add(self, url, *responses):
        self.routes[url] = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.hits[url] = self.hits.get(url, 0) + 1
        responses = self.routes.get(url)
        if not responses:
            return httpx.Response(404, text="not found")
        response = responses[min(self.hits[url], len(responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response

    def count(self, url):
        return self.hits.get(url, 0)

    @property
    def transport(self):
        return httpx.MockTransport(self)


def pdf_response(content):
    return httpx.Response(200, content=content, headers={"content-type": "application/pdf"})


@pytest.fixture
def config(tmp_path):
    cfg = AppConfig(
        cache_dir=str(tmp_path / "nap_cache"),
        dataset_path=str(tmp_path / "data" / "nap_data.json"),
        log_dir=str(tmp_path / "logs"),
    )
    cfg.fetch.request_delay = 1.0
    cfg.fetch.backoff_base = 5.0
    cfg.fetch.timeout = 5
    cfg.extraction.timeout = 60
    return cfg


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def router():
    return Router()


@pytest.fixture
def two_page_pdf(tmp_path):
    path = make_pdf(tmp_path / "two_pages.pdf", ["Adaptation priorities", "Monitoring and evaluation"])
    with open(path, "rb") as f:
        return f.read()
