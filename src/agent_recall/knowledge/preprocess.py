"""
Text Normalization

Shared by knowledge ingestion and retrieval so that stored chunks and
queries are compared in the same form.
"""

import logging
import re
from typing import List

logger = logging.getLogger("agent_recall.knowledge")

# Common English stop words ignored when extracting query terms
STOP_WORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "does", "for",
    "from", "had", "has", "have", "he", "her", "his", "how", "hey", "i",
    "in", "is", "it", "its", "of", "on", "or", "that", "the", "this",
    "to", "was", "what", "when", "where", "which", "who", "will", "with",
    "would", "there", "their", "they", "your", "you",
})


class TextNormalizer:
    """
    Strips markup and noise from text before embedding.

    Removes code, markdown syntax, URLs schemes, mentions, HTML tags and
    comments, then collapses whitespace, drops characters outside a small
    allowed set and lowercases the result.
    """

    CODE_BLOCK_PATTERN = re.compile(r'```[\s\S]*?```')
    INLINE_CODE_PATTERN = re.compile(r'`.*?`')
    HEADER_PATTERN = re.compile(r'#{1,6}\s*(.*)')
    IMAGE_PATTERN = re.compile(r'!\[(.*?)\]\(.*?\)')
    LINK_PATTERN = re.compile(r'\[(.*?)\]\(.*?\)')
    URL_PATTERN = re.compile(r'(https?://)?(www\.)?([^\s]+\.[^\s]+)')
    MENTION_PATTERN = re.compile(r'<@[!&]?\d+>')
    HTML_TAG_PATTERN = re.compile(r'<[^>]*>')
    HORIZONTAL_RULE_PATTERN = re.compile(r'^\s*[-*_]{3,}\s*$', re.MULTILINE)
    BLOCK_COMMENT_PATTERN = re.compile(r'/\*[\s\S]*?\*/')
    LINE_COMMENT_PATTERN = re.compile(r'//.*')
    WHITESPACE_PATTERN = re.compile(r'\s+')
    DISALLOWED_CHARS_PATTERN = re.compile(r'[^a-zA-Z0-9\s\-_./:?=&]')

    def normalize(self, text: str) -> str:
        """
        Normalize text for embedding and term matching.

        Args:
            text: Raw text, possibly markdown or chat markup

        Returns:
            Single-line lowercase text, or "" for invalid input
        """
        if not text or not isinstance(text, str):
            logger.warning("Invalid input for preprocessing")
            return ""

        text = self.CODE_BLOCK_PATTERN.sub('', text)
        text = self.INLINE_CODE_PATTERN.sub('', text)
        text = self.HEADER_PATTERN.sub(r'\1', text)
        text = self.IMAGE_PATTERN.sub(r'\1', text)
        text = self.LINK_PATTERN.sub(r'\1', text)
        text = self.URL_PATTERN.sub(r'\3', text)
        text = self.MENTION_PATTERN.sub('', text)
        text = self.HTML_TAG_PATTERN.sub('', text)
        text = self.HORIZONTAL_RULE_PATTERN.sub('', text)
        text = self.BLOCK_COMMENT_PATTERN.sub('', text)
        text = self.LINE_COMMENT_PATTERN.sub('', text)
        text = self.WHITESPACE_PATTERN.sub(' ', text)
        text = self.DISALLOWED_CHARS_PATTERN.sub('', text)

        return text.strip().lower()


def get_query_terms(query: str) -> List[str]:
    """Meaningful terms of a normalized query: longer than 3 chars and not stop words."""
    return [
        term
        for term in query.lower().split(" ")
        if len(term) > 3 and term not in STOP_WORDS
    ]
