"""
Unit tests for HTML image reference rewriting.
"""

import pytest
from bs4 import BeautifulSoup

from emailconvert.utils.error_handling import ParseFailed
from emailconvert.utils.html_rewriter import HtmlRewriter, SourceOrderFormatter
from tests.conftest import make_html

URL_A = "https://cdn.example.com/emails/aaaa"
URL_B = "https://cdn.example.com/emails/bbbb"


@pytest.fixture
def rewriter():
    return HtmlRewriter()


class TestRewrite:
    """Test cases for HtmlRewriter.rewrite."""

    def test_img_sources_are_replaced(self, rewriter):
        html = make_html("images/a.png", "./Images/B.PNG")
        output = rewriter.rewrite(html, {"images/a.png": URL_A, "images/b.png": URL_B})

        soup = BeautifulSoup(output, "html.parser")
        assert [img["src"] for img in soup.find_all("img")] == [URL_A, URL_B]
        assert "images/a.png" not in output
        assert rewriter.rewrite_count == 2

    def test_image_preload_links_are_replaced(self, rewriter):
        html = make_html(preload=("images/a.png",))
        output = rewriter.rewrite(html, {"images/a.png": URL_A})
        assert f'href="{URL_A}"' in output

    def test_other_links_are_untouched(self, rewriter):
        html = (
            '<link rel="stylesheet" href="images/a.png">'
            '<link rel="preload" as="font" href="images/a.png">'
        )
        output = rewriter.rewrite(html, {"images/a.png": URL_A})
        assert URL_A not in output
        assert rewriter.rewrite_count == 0

    def test_unmapped_reference_is_left_alone(self, rewriter):
        html = make_html("images/a.png", "images/missing.png")
        output = rewriter.rewrite(html, {"images/a.png": URL_A})
        assert URL_A in output
        assert 'src="images/missing.png"' in output

    def test_non_images_reference_is_not_looked_up(self, rewriter):
        # Same file name, but not under images/
        html = '<img src="assets/a.png">'
        output = rewriter.rewrite(html, {"assets/a.png": URL_A})
        assert 'src="assets/a.png"' in output

    def test_img_without_src(self, rewriter):
        output = rewriter.rewrite('<img alt="spacer">', {"images/a.png": URL_A})
        assert "spacer" in output
        assert URL_A not in output

    def test_attribute_order_and_text_are_preserved(self, rewriter):
        html = '<table><tr><td><img width="600" src="images/a.png" alt="Hero" style="display:block"></td></tr></table>'
        output = rewriter.rewrite(html, {"images/a.png": URL_A})
        assert output == (
            f'<table><tr><td><img width="600" src="{URL_A}" alt="Hero" style="display:block"></td></tr></table>'
        )

    def test_malformed_html_is_parsed_leniently(self, rewriter):
        html = '<div><p>Unclosed <img src="images/a.png"><span></div>'
        output = rewriter.rewrite(html, {"images/a.png": URL_A})
        assert output == f'<div><p>Unclosed <img src="{URL_A}"><span></div>'

    def test_empty_map_is_a_noop_for_references(self, rewriter):
        html = make_html("images/a.png")
        output = rewriter.rewrite(html, {})
        assert output == html


class TestSourcePreservation:
    """Test cases for output that must match the input outside rewritten values."""

    def test_only_rewritten_values_change(self, rewriter):
        html = (
            "<!DOCTYPE html>\n<html><body>"
            "<![if !mso]><p>x</p><![endif]>"
            "<p>A&nbsp;B &copy; &amp;</p><br>"
            "<img src='images/a.png' width=600 alt=\"\">"
            "</body></html>"
        )
        output = rewriter.rewrite(html, {"images/a.png": URL_A})
        assert output == html.replace("'images/a.png'", f"'{URL_A}'")

    def test_outlook_conditionals_survive(self, rewriter):
        html = (
            '<!--[if mso]><table width="600"><tr><td><![endif]-->'
            "<![if !mso]><div style=\"max-width:600px\"><![endif]>"
            '<img src="images/a.png">'
            "<![if !mso]></div><![endif]>"
            "<!--[if mso]></td></tr></table><![endif]-->"
        )
        output = rewriter.rewrite(html, {"images/a.png": URL_A})
        assert output == html.replace("images/a.png", URL_A)
        assert "<?if" not in output

    def test_entities_are_not_decoded(self, rewriter):
        html = '<p>&nbsp;&copy; 2024&hellip;</p><img src="images/a.png">'
        output = rewriter.rewrite(html, {"images/a.png": URL_A})
        assert output.startswith("<p>&nbsp;&copy; 2024&hellip;</p>")

    def test_void_elements_are_not_self_closed(self, rewriter):
        html = '<p>one<br>two</p><hr><img src="images/a.png" alt="x">'
        output = rewriter.rewrite(html, {"images/a.png": URL_A})
        assert output == f'<p>one<br>two</p><hr><img src="{URL_A}" alt="x">'

    def test_existing_self_closing_slash_is_kept(self, rewriter):
        output = rewriter.rewrite('<img src="images/a.png" />', {"images/a.png": URL_A})
        assert output == f'<img src="{URL_A}" />'

    @pytest.mark.parametrize("value, expected", [
        ("'images/a.png'", f"'{URL_A}'"),
        ("images/a.png", f'"{URL_A}"'),
        ('"./images/A.PNG"', f'"{URL_A}"'),
    ])
    def test_quoting_styles(self, rewriter, value, expected):
        output = rewriter.rewrite(f"<img alt=x src={value}>", {"images/a.png": URL_A})
        assert output == f"<img alt=x src={expected}>"

    def test_multiline_documents_and_crlf(self, rewriter):
        html = (
            "<html>\r\n<head>\r\n"
            '  <link rel="preload"\r\n        as="image" href="images/b.png">\r\n'
            "</head>\r\n<body>\r\n"
            "  <img\r\n    alt=\"hero\"\r\n    src=\"images/a.png\">\r\n"
            "</body>\r\n</html>\r\n"
        )
        output = rewriter.rewrite(html, {"images/a.png": URL_A, "images/b.png": URL_B})
        assert output == html.replace("images/a.png", URL_A).replace("images/b.png", URL_B)
        assert rewriter.rewrite_count == 2

    def test_repeated_attribute_rewrites_the_last_value(self, rewriter):
        output = rewriter.rewrite('<img src="images/x.png" src="images/a.png">', {"images/a.png": URL_A})
        assert output == f'<img src="images/x.png" src="{URL_A}">'

    def test_images_inside_comments_are_untouched(self, rewriter):
        html = '<!--[if mso]><img src="images/a.png"><![endif]--><img src="images/a.png">'
        output = rewriter.rewrite(html, {"images/a.png": URL_A})
        assert output == f'<!--[if mso]><img src="images/a.png"><![endif]--><img src="{URL_A}">'


class _PositionlessRewriter(HtmlRewriter):
    def _parse(self, document):
        return BeautifulSoup(document, self.parser, store_line_numbers=False)


class TestTreeSerialization:
    """Test cases for serializing the parsed tree when source positions are missing."""

    def test_formatter_keeps_attribute_order_and_void_tags(self):
        soup = BeautifulSoup('<img width="600" src="a.png" alt=""><br>', "html.parser")
        assert soup.decode(formatter=SourceOrderFormatter()) == '<img width="600" src="a.png" alt=""><br>'

    def test_rewrite_without_positions(self):
        rewriter = _PositionlessRewriter()
        output = rewriter.rewrite('<p>hi</p><img width="600" src="images/a.png"><br>', {"images/a.png": URL_A})
        assert output == f'<p>hi</p><img width="600" src="{URL_A}"><br>'
        assert rewriter.rewrite_count == 1


class TestParseFailure:
    """Test cases for parser failures."""

    def test_unknown_parser_raises_parse_failed(self):
        rewriter = HtmlRewriter(parser="no-such-parser")
        with pytest.raises(ParseFailed):
            rewriter.rewrite("<p>hi</p>", {})
