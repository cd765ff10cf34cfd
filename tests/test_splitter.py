import unittest

from pdfchat.services.splitter import split_pages, window_ranges


def _split(pages, size=300, overlap=100):
    return split_pages(
        pages,
        document_id="doc-1",
        source="report.pdf",
        chunk_size=size,
        chunk_overlap=overlap,
    )


class TestWindowRanges(unittest.TestCase):
    def test_windows_step_back_by_overlap(self) -> None:
        self.assertEqual(window_ranges(700, 300, 100), [(0, 300), (200, 500), (400, 700)])

    def test_short_text_single_window(self) -> None:
        self.assertEqual(window_ranges(250, 300, 100), [(0, 250)])

    def test_empty_text_no_windows(self) -> None:
        self.assertEqual(window_ranges(0, 300, 100), [])

    def test_rejects_overlap_not_smaller_than_size(self) -> None:
        with self.assertRaises(ValueError):
            window_ranges(10, 100, 100)
        with self.assertRaises(ValueError):
            window_ranges(10, 0, 0)


class TestSplitPages(unittest.TestCase):
    def test_single_page_shorter_than_chunk(self) -> None:
        text = "a" * 250
        chunks = _split([text])
        self.assertEqual(len(chunks), 1)
        self.assertEqual(chunks[0].text, text)
        self.assertEqual(chunks[0].page_number, 1)
        self.assertEqual(chunks[0].sequence_index, 0)

    def test_two_pages_keep_page_provenance(self) -> None:
        page1 = "".join(chr(ord("a") + i % 26) for i in range(400))
        page2 = "z" * 50
        chunks = _split([page1, page2])

        self.assertGreaterEqual(len(chunks), 2)
        self.assertEqual([c.page_number for c in chunks], [1, 1, 2])
        self.assertEqual(chunks[0].text, page1[:300])
        self.assertEqual(chunks[1].text, page1[200:400])
        self.assertEqual(chunks[2].text, page2)
        self.assertEqual([c.sequence_index for c in chunks], [0, 1, 2])

    def test_consecutive_chunks_overlap_exactly(self) -> None:
        text = "".join(chr(ord("a") + i % 23) for i in range(1234))
        chunks = _split([text], size=120, overlap=30)
        for prev, nxt in zip(chunks, chunks[1:]):
            self.assertLessEqual(len(prev.text), 120)
            self.assertEqual(prev.text[-30:], nxt.text[:30])
        self.assertLessEqual(len(chunks[-1].text), 120)
        self.assertTrue(text.endswith(chunks[-1].text))

    def test_deterministic(self) -> None:
        pages = ["Lorem ipsum dolor sit amet. " * 40, "second page " * 10]
        self.assertEqual(_split(pages), _split(pages))

    def test_empty_input_yields_nothing(self) -> None:
        self.assertEqual(_split([]), [])
        self.assertEqual(_split(["", "   \n"]), [])

    def test_blank_page_does_not_shift_page_numbers(self) -> None:
        chunks = _split(["", "text on page two"])
        self.assertEqual(len(chunks), 1)
        self.assertEqual(chunks[0].page_number, 2)

    def test_chunk_identity_depends_on_document_and_index(self) -> None:
        first = _split(["x" * 500])
        again = _split(["x" * 500])
        self.assertEqual([c.chunk_id for c in first], [c.chunk_id for c in again])
        self.assertEqual(len({c.chunk_id for c in first}), len(first))
        other = split_pages(
            ["x" * 500], document_id="doc-2", source="b.pdf", chunk_size=300, chunk_overlap=100
        )
        self.assertNotEqual(first[0].chunk_id, other[0].chunk_id)


if __name__ == "__main__":
    unittest.main()
