import asyncio
import json
import logging
import re
from typing import List, Sequence

from bs4 import BeautifulSoup
from readability import Document

from digest.ai import AIOracle
from digest.config import DESCRIPTION_FALLBACK, DESCRIPTION_MAX_LENGTH, TOPIC
from digest.errors import ParseError
from digest.http_client import HTTPClient
from digest.models import CategorizedArticle, EnrichedArticle, RankedArticle
from digest.rate_limit import retry

logger = logging.getLogger(__name__)

MAX_PROMPT_TEXT = 8000  # characters of article text sent to the model
TRAILING_PUNCTUATION = ".,;:!?-–—'\"’”"


def truncate_description(text: str, max_words: int = DESCRIPTION_MAX_LENGTH) -> str:
    """
    Collapses whitespace and caps the text at `max_words` words.
    Truncated text ends with "...", anything else ends with terminal punctuation.
    """
    words = text.split()
    if not words:
        return ""

    truncated = len(words) > max_words
    words = words[:max_words]
    sentence = " ".join(words)
    if not truncated and sentence.endswith((".", "!", "?")):
        return sentence

    sentence = sentence.rstrip(TRAILING_PUNCTUATION).rstrip()
    if not sentence:
        return ""
    return f"{sentence}..." if truncated else f"{sentence}."


def extract_article_text(html: str) -> str:
    """
    Main article text from a page: readability's content block, paragraphs
    and subheadings joined by blank lines. Falls back to the body text.
    """
    soup = BeautifulSoup(Document(html).summary(), "lxml")
    paragraphs = []
    for p in soup.find_all(["p", "h2", "h3"]):
        para_text = re.sub(r"\s+", " ", p.get_text(separator=" ", strip=True))
        if para_text.strip():
            paragraphs.append(para_text.strip())

    text_content = "\n\n".join(paragraphs)
    if not text_content:
        body = BeautifulSoup(html, "lxml").body
        text_content = re.sub(r"\s+", " ", body.get_text(separator=" ", strip=True)) if body else ""
    return text_content[:MAX_PROMPT_TEXT]


def build_description_prompt(article_text: str) -> str:
    return f"""Generate a subtitle description for the following article:

{article_text}

Requirements:
- The subtitle should be a single sentence of no more than {DESCRIPTION_MAX_LENGTH} words
- Capture the essence of the article without repeating the title
- Highlight a key insight, finding, or angle of the article
- Use engaging language that complements the title
- Assume the reader has basic familiarity with the topic
- Do not use colons or semicolons
- Write in a neutral, informative tone
"""


def build_summary_prompt(articles: List[dict]) -> str:
    return f"""Analyze the following articles and create a concise, engaging summary:

{json.dumps(articles, indent=2)}

Your task:
1. Generate a single paragraph summary of approximately 3 sentences, at most 450 characters.
2. Focus on the most compelling and relevant information from the articles.
3. Capture the overall theme conveyed by the collection of articles.
4. Highlight any significant trends, innovations, or important updates in {TOPIC}.

Guidelines:
- Do not include any article titles, links, or direct references to specific articles.
- Do not be general or vague. The first sentence should not be generic.
- Do not mention time periods such as "this week" or "this month".
- Do not use the term "newsletter".
- Write in a neutral, informative tone.
"""


class Enricher:
    """Fills in missing descriptions; a failure on one article only affects that article."""

    def __init__(self, http_client: HTTPClient, oracle: AIOracle, fallback: str = DESCRIPTION_FALLBACK, sleep=None):
        self.http_client = http_client
        self.oracle = oracle
        self.fallback = fallback
        self._sleep = sleep

    async def describe(self, article: RankedArticle) -> str:
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        html = await retry(self.http_client.fetch, article.link, **kwargs)
        article_text = extract_article_text(html)
        if not article_text:
            raise ParseError(f"No article text found at {article.link}")

        description = truncate_description(await self.oracle.generate_text(build_description_prompt(article_text)))
        if not description:
            raise ParseError(f"Generated description is empty for {article.link}")
        return description

    async def enrich_article(self, article: RankedArticle) -> EnrichedArticle:
        description = truncate_description(article.description or "")
        if not description:
            try:
                logger.info(f"Generating description for: {article.title}")
                description = await self.describe(article)
            except Exception as e:
                logger.warning(f"Failed to enrich article {article.link}: {e}")
                description = self.fallback
        return EnrichedArticle(title=article.title, link=article.link, description=description)

    async def enrich(self, articles: Sequence[RankedArticle]) -> List[EnrichedArticle]:
        enriched = await asyncio.gather(*(self.enrich_article(article) for article in articles))
        logger.info(f"Enriched {len(enriched)} articles")
        return list(enriched)


async def generate_summary(articles: Sequence[CategorizedArticle], oracle: AIOracle) -> str:
    """One paragraph over the final set. An empty answer fails the run."""
    payload = [{"title": a.title, "description": a.description, "category": a.category} for a in articles]
    summary = (await oracle.generate_text(build_summary_prompt(payload))).strip()
    if not summary:
        raise ParseError("Error generating summary", stage="summarize")
    logger.info(f"Generated summary: {summary[:80]}...")
    return summary
