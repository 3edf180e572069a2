"""Static token lookups over a captured page document."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Pattern, Sequence, Tuple

from bs4 import BeautifulSoup

from ..errors import ErrorKind, Result
from ..strategies import ChainOutcome, StrategyChain

LOGGER = logging.getLogger(__name__)

DEFAULT_HEADER = "anti-csrftoken-a2z"

# Dotted paths looked up on ``window``; the first non-empty string wins.
GLOBAL_PATHS = (
    "WholeFoodsConfig." + DEFAULT_HEADER,
    "csrfToken",
    DEFAULT_HEADER,
    "_token",
)

GLOBALS_JS = """
(paths) => {
  const found = {};
  for (const path of paths) {
    let value = window;
    for (const key of path.split('.')) {
      if (value === null || value === undefined) break;
      value = value[key];
    }
    if (typeof value === 'string' && value) found[path] = value;
  }
  return found;
}
"""


@dataclass
class DocumentSnapshot:
    """HTML of a page plus the global values read from its window."""

    html: str
    url: str = ""
    globals: Dict[str, str] = field(default_factory=dict)


def script_patterns(header: str = DEFAULT_HEADER) -> List[Tuple[str, Pattern[str]]]:
    """Regex variants tried against inline scripts, most specific first."""
    key = r"[\"']" + re.escape(header) + r"[\"']\s*:\s*"
    return [
        ("standard", re.compile(key + r"[\"']([^\"']+)[\"']")),
        ("flexible", re.compile(key + r"[\"']([^\"']*?)[\"']")),
        ("escaped", re.compile(key + r"[\"']([^\"'\\]*(?:\\.[^\"'\\]*)*)[\"']")),
        ("window-assignment", re.compile(r"window\.[^=]*" + key + r"[\"']([^\"']+)[\"']")),
        ("variable-assignment", re.compile(r"(?:var|let|const)\s+[^=]*=\s*[^{]*" + key + r"[\"']([^\"']+)[\"']")),
    ]


class DocumentTokenScanner:
    """Runs the five static lookups in order: meta tag, inline scripts,
    data attribute, window globals, hidden form fields."""

    def __init__(self, header: str = DEFAULT_HEADER) -> None:
        self.header = header
        self.patterns = script_patterns(header)
        self.chain: StrategyChain[str] = StrategyChain(
            "document-token",
            [
                ("meta-tag", self.from_meta),
                ("inline-script", self.from_scripts),
                ("data-attribute", self.from_data_attribute),
                ("global-state", self.from_globals),
                ("hidden-field", self.from_hidden_fields),
            ],
            error_kind=ErrorKind.TOKEN_ACQUISITION,
        )

    def scan(self, snapshot: DocumentSnapshot) -> ChainOutcome[str]:
        soup = BeautifulSoup(snapshot.html or "", "html.parser")
        outcome = self.chain.run(soup, snapshot)
        if outcome.ok:
            LOGGER.debug("Document token found by %s on %s", outcome.winner, snapshot.url or "<snapshot>")
        return outcome

    def _miss(self, what: str) -> Result[str]:
        return Result.fail(ErrorKind.TOKEN_ACQUISITION, f"no {what}")

    def from_meta(self, soup: BeautifulSoup, snapshot: DocumentSnapshot) -> Result[str]:
        for name in (self.header, "csrf-token"):
            tag = soup.find("meta", attrs={"name": name})
            if tag is not None and tag.get("content"):
                return Result.ok(tag["content"].strip(), f"meta[name={name}]")
        return self._miss("meta tag")

    def from_scripts(self, soup: BeautifulSoup, snapshot: DocumentSnapshot) -> Result[str]:
        for script in soup.find_all("script"):
            text = script.string or script.get_text() or ""
            if self.header not in text:
                continue
            for label, pattern in self.patterns:
                match = pattern.search(text)
                if match and match.group(1):
                    return Result.ok(match.group(1), f"script pattern {label}")
        return self._miss("inline script match")

    def from_data_attribute(self, soup: BeautifulSoup, snapshot: DocumentSnapshot) -> Result[str]:
        attr = f"data-{self.header}"
        tag = soup.find(attrs={attr: True})
        if tag is not None and tag.get(attr):
            return Result.ok(tag[attr].strip(), f"[{attr}]")
        return self._miss("data attribute")

    def from_globals(self, soup: BeautifulSoup, snapshot: DocumentSnapshot) -> Result[str]:
        for path in global_paths(self.header):
            value = snapshot.globals.get(path)
            if value:
                return Result.ok(value, f"window.{path}")
        return self._miss("global value")

    def from_hidden_fields(self, soup: BeautifulSoup, snapshot: DocumentSnapshot) -> Result[str]:
        names = (self.header, "csrfToken", "_token")
        for node in soup.find_all("input", attrs={"type": "hidden"}):
            if node.get("name") in names and node.get("value"):
                return Result.ok(node["value"].strip(), f"input[name={node['name']}]")
        return self._miss("hidden field")


def global_paths(header: str = DEFAULT_HEADER) -> Sequence[str]:
    if header == DEFAULT_HEADER:
        return GLOBAL_PATHS
    return ("WholeFoodsConfig." + header, "csrfToken", header, "_token")


def scan_document(snapshot: DocumentSnapshot, header: str = DEFAULT_HEADER) -> ChainOutcome[str]:
    """Search a document for the token without touching the network."""
    return DocumentTokenScanner(header).scan(snapshot)


__all__ = ["DocumentSnapshot", "DocumentTokenScanner", "GLOBALS_JS", "global_paths", "scan_document"]
