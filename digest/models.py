from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
from datetime import datetime


@dataclass(frozen=True)
class SourceSpec:
    url: str  # Listing page to scrape, also the base for relative links
    container_selector: str
    link_selector: str
    title_selector: str
    description_selector: Optional[str] = None
    date_selector: Optional[str] = None
    require_date: bool = False  # Drop items without a parseable date


@dataclass(frozen=True)
class RawCandidate:
    source_url: str
    link: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    snippet: Optional[str] = None  # Search result teaser


@dataclass(frozen=True)
class ValidCandidate:
    source_url: str
    link: str  # Absolute https URL
    title: str
    description: Optional[str] = None
    date: Optional[datetime] = None
    snippet: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: RawCandidate) -> Optional["ValidCandidate"]:
        """Returns None when the raw record has no usable link or title."""
        link = (raw.link or "").strip()
        title = (raw.title or "").strip()
        if not link or not title or not link.startswith(("http://", "https://")):
            return None
        return cls(
            source_url=raw.source_url,
            link=link,
            title=title,
            description=raw.description,
            date=raw.date,
            snippet=raw.snippet,
        )

    @property
    def teaser(self) -> str:
        return self.description or self.snippet or ""


@dataclass(frozen=True)
class CountedCandidate(ValidCandidate):
    occurrence_count: int = 1

    def bumped(self) -> "CountedCandidate":
        return replace(self, occurrence_count=self.occurrence_count + 1)


@dataclass(frozen=True)
class RankedArticle:
    source_url: str
    link: str
    title: str
    description: Optional[str] = None
    date: Optional[datetime] = None

    @classmethod
    def from_counted(cls, candidate: CountedCandidate) -> "RankedArticle":
        # Search snippets only help the AI judge; they are not descriptions
        return cls(
            source_url=candidate.source_url,
            link=candidate.link,
            title=candidate.title,
            description=candidate.description,
            date=candidate.date,
        )


@dataclass(frozen=True)
class EnrichedArticle:
    title: str
    link: str
    description: str


@dataclass(frozen=True)
class CategorizedArticle:
    title: str
    link: str
    description: str
    category: str

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "link": self.link, "description": self.description}


@dataclass(frozen=True)
class CategoryGroup:
    name: str
    articles: List[CategorizedArticle] = field(default_factory=list)


@dataclass(frozen=True)
class DigestResult:
    summary: str
    categories: List[CategoryGroup]

    def articles(self) -> List[CategorizedArticle]:
        return [article for group in self.categories for article in group.articles]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "categories": [
                {"name": group.name, "articles": [a.to_dict() for a in group.articles]}
                for group in self.categories
            ],
        }
