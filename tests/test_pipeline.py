"""End-to-end tests for the pipeline driver against a mocked NAP Central."""

import json
import os

import httpx
import pytest

from nap_scraper.errors import CacheMissing, ConnectionFailed, StructureNotFound
from nap_scraper.models import NapRecord
from nap_scraper.pipeline import Pipeline, get_cached, get_naps, refresh, summarize
from nap_scraper.store import RecordStore, export_dataset, load_snapshot

from conftest import SITE, TABLE_URL, make_pdf, nap_row, pdf_response, table_html

KENYA_URL = SITE + "/docs/kenya.pdf"
CHAD_URL = SITE + "/docs/chad.pdf"


def _three_row_site(router, pdf_bytes):
    rows = [
        nap_row("1", "Kenya", '<p><a href="/docs/kenya.pdf">English</a></p>'),
        nap_row("2", "Sudan", "Arabic"),
        nap_row("3", "Chad", '<p><a href="/docs/chad.pdf">English</a></p>'),
    ]
    router.add(TABLE_URL, httpx.Response(200, text=table_html(rows)))
    router.add(KENYA_URL, pdf_response(pdf_bytes))
    router.add(CHAD_URL, httpx.Response(404))


@pytest.fixture
def pipeline(config, router, sleeps):
    p = Pipeline(config, transport=router.transport, sleep=sleeps)
    yield p
    p.close()


class TestRefresh:

    def test_three_row_scenario(self, pipeline, router, two_page_pdf, config):
        _three_row_site(router, two_page_pdf)

        store = pipeline.refresh()

        assert len(store) == 3
        kenya, sudan, chad = store.get("kenya"), store.get("sudan"), store.get("chad")
        assert kenya.pdf_download_success and kenya.pdf_pages == 2
        assert "Adaptation priorities" in kenya.pdf_text
        assert sudan.pdf_link is None and not sudan.pdf_download_success
        assert sudan.pdf_text is None
        assert not chad.pdf_download_success and chad.pdf_text is None
        assert router.count(CHAD_URL) == 3

        assert sum(1 for r in store if r.pdf_text) == 1
        assert pipeline.summary.headline == "1/3 processed"
        assert pipeline.summary.total_pages == 2
        assert pipeline.summary.average_pages == 2.0
        assert set(pipeline.summary.failures) == {"chad"}

        # snapshot and published dataset both hold the full store
        assert load_snapshot(config.snapshot_path).to_list() == store.to_list()
        assert get_cached(config).to_list() == store.to_list()

    def test_second_run_is_idempotent(self, pipeline, router, two_page_pdf, config):
        _three_row_site(router, two_page_pdf)
        pipeline.refresh()
        with open(config.snapshot_path, encoding="utf-8") as f:
            first = json.load(f)["records"]
        kenya_hits = router.count(KENYA_URL)

        pipeline.refresh()
        with open(config.snapshot_path, encoding="utf-8") as f:
            second = json.load(f)["records"]

        assert router.count(KENYA_URL) == kenya_hits
        assert second == first
        assert pipeline.summary.downloaded_this_run == 0
        assert pipeline.summary.extracted_this_run == 0

    def test_forced_rescrape_keeps_finished_work(self, pipeline, router, two_page_pdf):
        _three_row_site(router, two_page_pdf)
        pipeline.refresh()

        store = pipeline.refresh(force=True)

        assert router.count(TABLE_URL) == 2
        assert router.count(KENYA_URL) == 1
        assert store.get("kenya").pdf_pages == 2

    def test_resume_after_interruption(self, pipeline, router, two_page_pdf, config):
        _three_row_site(router, two_page_pdf)
        router.add(CHAD_URL, pdf_response(two_page_pdf))

        # First run died after Kenya: only Kenya's work is in the snapshot
        store = pipeline.load_store()
        store.merge(pipeline.scrape())
        kenya = store.get("kenya")
        kenya.pdf_path = pipeline.downloader.target_path(kenya)
        os.makedirs(config.download_dir, exist_ok=True)
        make_pdf(kenya.pdf_path, ["Kenya"])
        kenya.pdf_download_success = True
        pipeline.checkpoint(store)

        store = pipeline.refresh()

        assert router.count(KENYA_URL) == 0
        assert router.count(CHAD_URL) == 1
        assert store.get("chad").pdf_download_success
        assert pipeline.summary.extracted == 2

    def test_unreachable_site(self, pipeline, router):
        router.add(TABLE_URL, httpx.ConnectError("no route"))
        with pytest.raises(ConnectionFailed):
            pipeline.refresh()

    def test_layout_change(self, pipeline, router):
        router.add(TABLE_URL, httpx.Response(200, text="<html><body>Redesigned</body></html>"))
        with pytest.raises(StructureNotFound):
            pipeline.refresh()

    def test_malformed_row_does_not_stop_run(self, pipeline, router, two_page_pdf):
        rows = [
            nap_row("1", "Kenya", '<p><a href="/docs/kenya.pdf">English</a></p>'),
            ["2", "Chad", "Africa", "LDC"],
        ]
        router.add(TABLE_URL, httpx.Response(200, text=table_html(rows)))
        router.add(KENYA_URL, pdf_response(two_page_pdf))

        store = pipeline.refresh()

        assert [r.country_name for r in store] == ["Kenya"]
        assert store.get("kenya").pdf_text


class TestAccessors:

    def test_get_cached_without_dataset(self, config):
        with pytest.raises(CacheMissing):
            get_cached(config)

    def test_get_cached_default_config_uses_environment(self, tmp_path, monkeypatch):
        dataset = tmp_path / "published" / "naps.json"
        monkeypatch.setenv("NAP_DATASET_PATH", str(dataset))
        export_dataset(RecordStore([NapRecord(nap_id="1", country_name="Kenya")]), str(dataset))

        store = get_cached()
        assert [r.slug for r in store] == ["kenya"]

    def test_module_refresh_and_get_naps(self, config, router, sleeps, two_page_pdf):
        _three_row_site(router, two_page_pdf)

        store = refresh(config, transport=router.transport, sleep=sleeps)
        assert get_naps(config=config).to_list() == store.to_list()

    def test_summarize_counts(self, pipeline, router, two_page_pdf):
        _three_row_site(router, two_page_pdf)
        summary = summarize(pipeline.refresh())
        assert (summary.total, summary.with_link, summary.downloaded, summary.extracted) == (3, 2, 1, 1)
