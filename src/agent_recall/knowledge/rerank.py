"""
Lexical Reranking

Adjusts vector similarity scores with literal query-term matches.
"""

from typing import List

from agent_recall.knowledge.preprocess import get_query_terms
from agent_recall.models.knowledge import RAGKnowledgeItem

# Matched terms closer than this many words earn the proximity bonus
PROXIMITY_WINDOW = 5
MATCH_BOOST = 2.0
PROXIMITY_BOOST = 1.5
NO_MATCH_PENALTY = 0.3


def has_proximity_match(text: str, terms: List[str]) -> bool:
    """True if the first occurrences of two consecutive terms are within the window."""
    words = text.lower().split(" ")
    positions = []
    for term in terms:
        position = next((i for i, word in enumerate(words) if term in word), -1)
        if position != -1:
            positions.append(position)

    if len(positions) < 2:
        return False

    return any(
        abs(positions[i] - positions[i + 1]) <= PROXIMITY_WINDOW
        for i in range(len(positions) - 1)
    )


def rerank_results(
    results: List[RAGKnowledgeItem],
    processed_query: str,
    has_context: bool = False,
) -> List[RAGKnowledgeItem]:
    """
    Rescore and sort results, best first.

    Score is multiplied by 1 + 2 * (matched / total terms), and by 1.5 more
    when matches sit close together. Results with no matching term are
    multiplied by 0.3 unless conversation context was part of the query.
    Returns copies; the input items are not modified.
    """
    query_terms = get_query_terms(processed_query)
    reranked = []

    for result in results:
        score = result.score or 0.0
        text = result.content.text.lower()
        matching_terms = [term for term in query_terms if term in text]

        if matching_terms:
            score *= 1 + (len(matching_terms) / len(query_terms)) * MATCH_BOOST
            if has_proximity_match(result.content.text, matching_terms):
                score *= PROXIMITY_BOOST
        elif not has_context:
            score *= NO_MATCH_PENALTY

        reranked.append(
            result.model_copy(update={"score": score, "matched_terms": matching_terms})
        )

    reranked.sort(key=lambda item: item.score, reverse=True)
    return reranked
