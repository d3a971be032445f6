import unittest

from application.services.context_formatter import format_results_for_prompt, format_retrieval_result
from domain.entities import Chunk, RetrievalResult, RetrievalSettings, ScoredChunk


def _scored(rank: int, document_id: str, page: int, text: str) -> ScoredChunk:
    chunk = Chunk(id=f"{document_id}-{rank}", document_id=document_id, page=page, chunk_index=rank, text=text)
    return ScoredChunk(chunk=chunk, lexical_score=None, vector_score=None, fused_score=1.0 / rank, rank=rank)


class TestFormatResultsForPrompt(unittest.TestCase):
    def setUp(self):
        self.results = [
            _scored(1, "D1", 4, "Base rent increases by 3% on each anniversary."),
            _scored(2, "D2", 9, "Pets are permitted with landlord consent."),
            _scored(3, "D1", 5, "CAM charges are capped at 5% per year."),
        ]
        self.titles = {"D1": "Rent escalation clause", "D2": "Pet policy"}

    def test_renders_citations_in_rank_order(self):
        text = format_results_for_prompt(list(reversed(self.results)), self.titles)

        self.assertEqual(
            text,
            "[1] Rent escalation clause (page 4)\nBase rent increases by 3% on each anniversary.\n\n"
            "[2] Pet policy (page 9)\nPets are permitted with landlord consent.\n\n"
            "[3] Rent escalation clause (page 5)\nCAM charges are capped at 5% per year.",
        )

    def test_is_deterministic(self):
        self.assertEqual(
            format_results_for_prompt(self.results, self.titles),
            format_results_for_prompt(self.results, dict(self.titles)),
        )

    def test_drops_lowest_ranked_passages_first(self):
        full = format_results_for_prompt(self.results, self.titles)
        budget = len(full) - 10

        text = format_results_for_prompt(self.results, self.titles, max_chars=budget)

        self.assertLessEqual(len(text), budget)
        self.assertIn("[2] Pet policy (page 9)", text)
        self.assertNotIn("CAM charges", text)
        self.assertTrue(text.endswith("[1 more passage omitted]"))

    def test_marks_a_cut_top_passage(self):
        text = format_results_for_prompt(self.results, self.titles, max_chars=60)

        self.assertLessEqual(len(text), 60)
        self.assertTrue(text.startswith("[1] Rent escalation clause (page 4)\n"))
        self.assertTrue(text.endswith("[truncated]"))
        self.assertNotIn("[2]", text)

    def test_unknown_title_and_empty_input(self):
        text = format_results_for_prompt(self.results[:1], {})

        self.assertTrue(text.startswith("[1] Untitled document (page 4)"))
        self.assertEqual(format_results_for_prompt([], self.titles), "")

    def test_rejects_budgets_smaller_than_the_marker(self):
        for max_chars in (0, -5, 11):
            with self.subTest(max_chars=max_chars):
                with self.assertRaises(ValueError):
                    format_results_for_prompt(self.results, self.titles, max_chars=max_chars)

    def test_marker_survives_the_smallest_budget(self):
        for max_chars in (12, 20, 36):
            with self.subTest(max_chars=max_chars):
                text = format_results_for_prompt(self.results, self.titles, max_chars=max_chars)

                self.assertLessEqual(len(text), max_chars)
                self.assertTrue(text.endswith(" [truncated]"))

    def test_formats_a_retrieval_result_with_configured_budget(self):
        result = RetrievalResult(chunks=self.results, valid_document_ids=["D1", "D2"], document_titles=self.titles)

        self.assertEqual(format_retrieval_result(result), format_results_for_prompt(self.results, self.titles))
        self.assertTrue(
            format_retrieval_result(result, RetrievalSettings(max_context_chars=60)).endswith("[truncated]")
        )


if __name__ == "__main__":
    unittest.main()
