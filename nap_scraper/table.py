"""NAP Central submissions table -> NapRecord list.

The table is read positionally: [id, country, region, LDC/SIDS marker,
languages with PDF links, date posted]. A layout change on the site should
surface as StructureNotFound, not as a list of garbage records.

English link policy: the first link whose label mentions "english" wins.
The label is the anchor text, its title attribute, or the text of the
enclosing <p> when that paragraph holds only this link. If no label
matches, the first link in the cell is used, since the site lists English
first.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple, Union

from bs4 import BeautifulSoup, Tag

from .errors import RowMalformed, StructureNotFound
from .models import NapRecord

logger = logging.getLogger("nap_scraper")

MIN_COLUMNS = 6
_WS = re.compile(r"\s+")


def _clean(text: Optional[str]) -> str:
    return _WS.sub(" ", text or "").strip()


def _link_label(a: Tag) -> str:
    parts = [a.get_text(" "), a.get("title") or ""]
    para = a.find_parent("p")
    if para is not None and len(para.find_all("a", href=True)) == 1:
        parts.append(para.get_text(" "))
    return _clean(" ".join(parts))


def select_pdf_link(cell: Tag) -> Tuple[Optional[str], List[Dict[str, str]]]:
    """Pick the English PDF link in a language cell.

    Returns (href or None, every link in the cell as {label, href}).
    """
    anchors = [a for a in cell.find_all("a", href=True) if a["href"].strip()]
    links = [{"label": _clean(a.get_text(" ")), "href": a["href"].strip()} for a in anchors]
    if not anchors:
        return None, links

    for a in anchors:
        if "english" in _link_label(a).lower():
            return a["href"].strip(), links
    return anchors[0]["href"].strip(), links


def parse_row(row: Tag, row_number: int) -> NapRecord:
    """Raises RowMalformed when the row can't be mapped onto the column layout."""
    cells = row.find_all("td", recursive=False)
    if len(cells) < MIN_COLUMNS:
        raise RowMalformed(f"row {row_number} has {len(cells)} columns, need {MIN_COLUMNS}")

    country_name = _clean(cells[1].get_text(" "))
    if not country_name:
        raise RowMalformed(f"row {row_number} has no country name")

    pdf_link, links = select_pdf_link(cells[4])
    return NapRecord(
        nap_id=_clean(cells[0].get_text(" ")),
        country_name=country_name,
        region=_clean(cells[2].get_text(" ")),
        ldc_sids_marker=_clean(cells[3].get_text(" ")),
        language_options=_clean(cells[4].get_text(" ")),
        language_links=links,
        date_posted=_clean(cells[5].get_text(" ")),
        pdf_link=pdf_link,
    )


def parse_submissions(html: Union[str, BeautifulSoup]) -> List[NapRecord]:
    """Extract one record per well-formed table row, in document order."""
    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html, "html.parser")

    rows = soup.select("tbody tr")
    if not rows:
        # Tables written without an explicit <tbody>
        rows = [tr for tr in soup.select("table tr") if tr.find("td", recursive=False)]
    if not rows:
        raise StructureNotFound("No submission rows found in page; has the site layout changed?")

    records = []
    skipped = 0
    for i, row in enumerate(rows, 1):
        try:
            records.append(parse_row(row, i))
        except RowMalformed as e:
            skipped += 1
            logger.warning(f"Skipping malformed row: {e}")

    logger.info(f"Parsed {len(records)} NAP entries ({skipped} rows skipped)")
    return records
