from __future__ import annotations

from dataclasses import dataclass, field

from profile_scout.models.research import Finding, SearchResult
from profile_scout.tools import web_utils

RECOGNIZED_DOMAIN_BONUS = 2
NAME_IN_URL_BONUS = 1


@dataclass
class EvidenceAggregator:
    """Owns search results, visited URLs and accepted findings for one research run."""

    target_name: str
    recognized_domain: str
    acceptance_threshold: float = 0.6
    findings_cap: int = 5
    findings_minimum: int = 3
    results: list[SearchResult] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    visited: set[str] = field(default_factory=set)
    visited_order: list[str] = field(default_factory=list)
    queries: list[str] = field(default_factory=list)
    _seen_urls: set[str] = field(default_factory=set, repr=False)

    def add_results(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        """Merge results for ``query``; the first occurrence of a URL wins. Returns the new ones."""
        self.queries.append(query)
        added: list[SearchResult] = []
        for result in results:
            key = web_utils.normalize_url(result.url)
            if key in self._seen_urls:
                continue
            self._seen_urls.add(key)
            self.results.append(result)
            added.append(result)
        return added

    def relevance(self, result: SearchResult) -> int:
        score = 0
        if web_utils.is_on_domain(result.url, self.recognized_domain):
            score += RECOGNIZED_DOMAIN_BONUS
        url = result.url.lower()
        if any(token in url for token in web_utils.name_tokens(self.target_name)):
            score += NAME_IN_URL_BONUS
        return score

    def ranked(self, *, unvisited_only: bool = False) -> list[SearchResult]:
        # sorted() is stable, so equal scores keep their discovery order.
        pool = [r for r in self.results if not (unvisited_only and self.is_visited(r.url))]
        return sorted(pool, key=self.relevance, reverse=True)

    def mark_visited(self, url: str) -> None:
        key = web_utils.normalize_url(url)
        if key not in self.visited:
            self.visited.add(key)
            self.visited_order.append(url)

    def is_visited(self, url: str) -> bool:
        return web_utils.normalize_url(url) in self.visited

    def accept(self, finding: Finding) -> bool:
        if finding.confidence <= self.acceptance_threshold:
            return False
        if len(self.findings) >= self.findings_cap:
            return False
        self.findings.append(finding)
        return True

    @property
    def at_cap(self) -> bool:
        return len(self.findings) >= self.findings_cap

    def needs_follow_up(self, follow_up_done: bool) -> bool:
        return not follow_up_done and len(self.findings) < self.findings_minimum

    def sources(self) -> list[str]:
        """Visited URLs in visit order, followed by finding sources not visited directly."""
        ordered = list(self.visited_order)
        for finding in self.findings:
            if finding.source and not self.is_visited(finding.source):
                ordered.append(finding.source)
        return ordered
