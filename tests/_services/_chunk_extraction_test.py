"""Unit tests for the default chunking service."""
# type: ignore
import unittest

from muralla._exceptions import InvalidConfigError
from muralla._services import DefaultChunkingService, DefaultChunkingServiceConfig


def _chunker(size):
    return DefaultChunkingService(config=DefaultChunkingServiceConfig(chunk_char_size=size))


class TestDefaultChunkingService(unittest.TestCase):
    """Test suite for greedy whitespace chunking."""

    def test_default_budget(self):
        """Test the default segment size."""
        self.assertEqual(DefaultChunkingService().config.chunk_char_size, 24_000)

    def test_short_text_is_one_segment(self):
        """Test that text under the budget comes back unchanged."""
        text = "Paris is the capital of France."
        self.assertEqual(DefaultChunkingService().split(text), [text])

    def test_empty_text(self):
        """Test that empty input produces no segments."""
        self.assertEqual(DefaultChunkingService().split(""), [])

    def test_lossless_and_within_budget(self):
        """Test that segments rebuild the input exactly and respect the budget."""
        text = "  The quick\tbrown fox\n\njumps over   the lazy dog.\n"
        segments = _chunker(12).split(text)

        self.assertEqual("".join(segments), text)
        self.assertTrue(all(len(s) <= 12 for s in segments))
        self.assertEqual(segments[0], "  The quick\t")

    def test_leading_whitespace_is_own_token(self):
        """Test that a leading whitespace run can be flushed on its own."""
        self.assertEqual(_chunker(4).split("   abcd"), ["   ", "abcd"])

    def test_oversized_token_kept_whole(self):
        """Test that a token longer than the budget becomes its own segment."""
        segments = _chunker(5).split("ab " + "x" * 12 + " cd")

        self.assertEqual(segments, ["ab ", "x" * 12 + " ", "cd"])

    def test_greedy_packing(self):
        """Test that tokens are packed until the next one would overflow."""
        self.assertEqual(_chunker(10).split("aaaa bbbb cccc "), ["aaaa bbbb ", "cccc "])

    def test_whitespace_only(self):
        """Test that whitespace-only input survives as one segment."""
        self.assertEqual(_chunker(3).split(" \n\t  "), [" \n\t  "])

    def test_fifty_thousand_characters(self):
        """Test that a 50,000-character document yields three segments."""
        text = "word " * 10_000
        segments = DefaultChunkingService().split(text)

        self.assertEqual([len(s) for s in segments], [24_000, 24_000, 2_000])
        self.assertEqual("".join(segments), text)

    def test_deterministic(self):
        """Test that splitting is pure."""
        text = "alpha beta gamma delta " * 50
        chunker = _chunker(40)
        self.assertEqual(chunker.split(text), chunker.split(text))

    def test_invalid_budget(self):
        """Test that a non-positive budget is rejected."""
        with self.assertRaises(InvalidConfigError):
            _chunker(0)


if __name__ == "__main__":
    unittest.main()
