"""Tests for hashtag and wiki-link extraction."""
from notecottage.parsing import extract_tags, extract_wiki_links, links_to_title


class TestExtractTags:
    """Tests for hashtag extraction."""

    def test_numbers_are_not_tags(self):
        """A hash followed by a digit is not a tag."""
        content = "That is #1 on my list. Item #2 is also important. But #javascript is a tag."
        assert extract_tags(content) == {"javascript"}

    def test_letter_led_tags_may_contain_digits(self):
        """Digits after the first letter are part of the tag."""
        content = "Learning #nodejs v18 and #python3 with #web2 development."
        assert extract_tags(content) == {"nodejs", "python3", "web2"}

    def test_mixed_boundaries(self):
        """Decimals, bare numbers and underscore-led tokens are rejected."""
        assert extract_tags("#3.14 #99 #v3 #item99 #_underscore") == {"v3", "item99"}

    def test_case_insensitive_dedup(self):
        """Tags are lowercased and deduplicated."""
        assert extract_tags("#Python #PYTHON #python") == {"python"}

    def test_empty_content(self):
        """Empty or missing content has no tags."""
        assert extract_tags("") == set()
        assert extract_tags(None) == set()

    def test_tag_stops_at_punctuation(self):
        """Tags end at the first non-word character."""
        assert extract_tags("see #todo, #done.") == {"todo", "done"}


class TestWikiLinks:
    """Tests for wiki-link parsing."""

    def test_plain_and_labelled_links(self):
        """Both [[Target]] and [[Target|Label]] forms are parsed in order."""
        links = extract_wiki_links("See [[Alpha]] and [[ Beta | the second ]].")
        assert links == [("Alpha", None), ("Beta", "the second")]

    def test_no_links(self):
        """Content without brackets yields nothing."""
        assert extract_wiki_links("no links [here]") == []

    def test_links_to_title_is_case_insensitive(self):
        """Matching a title ignores case and surrounding whitespace."""
        assert links_to_title("Go to [[meeting notes]]", "Meeting Notes")
        assert not links_to_title("Go to [[Meeting]]", "Meeting Notes")
