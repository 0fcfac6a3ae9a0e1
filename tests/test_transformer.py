from __future__ import annotations

import unittest

from pipeline_fakes import PLAIN_META, SCENARIO, SCENARIO_PATCHED, TWO_ANCHORS
from recipe_refactor.transformer import (
    SPAN_CODE,
    SPAN_COMMENT,
    SPAN_STRING,
    count_anchors,
    find_meta_block,
    qualify_code,
    rewrite_meta_block,
    scan_spans,
)


def _meta(body: str) -> str:
    return "{ lib }:\n{\n  meta = with lib; " + body + ";\n}\n"


class RewriteMetaBlockTests(unittest.TestCase):
    def test_recipe_with_string_mentioning_with_lib(self) -> None:
        self.assertEqual(rewrite_meta_block(SCENARIO), SCENARIO_PATCHED)

    def test_drops_header_and_qualifies_namespace(self) -> None:
        self.assertEqual(
            rewrite_meta_block("meta = with lib; { license = licenses.mit; }"),
            "meta = { license = lib.licenses.mit; }",
        )

    def test_rewrite_is_idempotent(self) -> None:
        once = rewrite_meta_block(SCENARIO)
        self.assertEqual(rewrite_meta_block(once), once)

    def test_plain_meta_block_is_left_as_is(self) -> None:
        self.assertEqual(rewrite_meta_block(PLAIN_META), PLAIN_META)

    def test_string_literals_and_comments_are_copied_through(self) -> None:
        source = _meta(
            "{\n"
            '    description = "uses optionals and licenses.mit";\n'
            "    longDescription = ''see ${\"licenses.gpl\"} for platforms.linux'';\n"
            "    # licenses.mit is the default\n"
            "    /* optional platforms.all */\n"
            "    license = licenses.mit;\n"
            "  }"
        )
        rewritten = rewrite_meta_block(source)

        self.assertIn('"uses optionals and licenses.mit"', rewritten)
        self.assertIn("''see ${\"licenses.gpl\"} for platforms.linux''", rewritten)
        self.assertIn("# licenses.mit is the default", rewritten)
        self.assertIn("/* optional platforms.all */", rewritten)
        self.assertIn("license = lib.licenses.mit;", rewritten)
        self.assertNotIn("with lib;", rewritten)

    def test_with_namespace_is_qualified(self) -> None:
        rewritten = rewrite_meta_block(_meta("{ maintainers = with maintainers; [ alice ]; }"))
        self.assertIn("maintainers = with lib.maintainers; [ alice ];", rewritten)

    def test_functions_and_namespaces_in_one_expression(self) -> None:
        rewritten = rewrite_meta_block(
            _meta("{ platforms = platforms.linux ++ optionals stdenv.isDarwin platforms.darwin; }")
        )
        self.assertIn(
            "platforms = lib.platforms.linux ++ lib.optionals stdenv.isDarwin lib.platforms.darwin;",
            rewritten,
        )

    def test_suffix_after_block_is_untouched(self) -> None:
        source = (
            "{ lib }:\n{\n"
            '  meta = with lib; { a = { b = licenses.mit; }; c = "}"; };\n'
            "  after = licenses.mit;\n"
            "}\n"
        )
        rewritten = rewrite_meta_block(source)
        self.assertIn('meta = { a = { b = lib.licenses.mit; }; c = "}"; };', rewritten)
        self.assertIn("  after = licenses.mit;\n", rewritten)

    def test_missing_or_unbalanced_block_returns_none(self) -> None:
        self.assertIsNone(rewrite_meta_block('{ pname = "x"; }'))
        self.assertIsNone(rewrite_meta_block("meta = with lib; { license = licenses.mit;"))

    def test_anchor_inside_string_is_not_a_block(self) -> None:
        self.assertIsNone(rewrite_meta_block('{ description = "meta = with lib; { x }"; }'))


class QualifyCodeTests(unittest.TestCase):
    def test_already_qualified_or_dotted_names_are_left_alone(self) -> None:
        self.assertEqual(qualify_code("foo.platforms.linux"), "foo.platforms.linux")
        self.assertEqual(qualify_code("lib.licenses.mit"), "lib.licenses.mit")

    def test_double_prefix_collapses(self) -> None:
        self.assertEqual(qualify_code("license = lib.lib.licenses.mit;"), "license = lib.licenses.mit;")

    def test_function_name_as_attribute_definition_is_not_qualified(self) -> None:
        self.assertEqual(qualify_code("optional = true;"), "optional = true;")
        self.assertEqual(qualify_code("x = optional true 1;"), "x = lib.optional true 1;")

    def test_longer_identifiers_are_not_rewritten(self) -> None:
        self.assertEqual(qualify_code("x = lengthOf y;"), "x = lengthOf y;")
        self.assertEqual(qualify_code("x = my-length;"), "x = my-length;")
        self.assertEqual(qualify_code("x = length y;"), "x = lib.length y;")


class AnchorAndSpanTests(unittest.TestCase):
    def test_count_anchors(self) -> None:
        self.assertEqual(count_anchors(SCENARIO), 1)
        self.assertEqual(count_anchors(PLAIN_META), 0)
        self.assertEqual(count_anchors(TWO_ANCHORS), 2)
        self.assertEqual(count_anchors('{ d = "meta = with lib;"; }'), 0)
        self.assertEqual(count_anchors("# meta = with lib;\n{ }"), 0)

    def test_interpolation_with_quotes_stays_in_one_string_span(self) -> None:
        text = 'x = "a ${ "b" + "}" } c"; y = 1;'
        spans = scan_spans(text)
        self.assertEqual([span.kind for span in spans], [SPAN_CODE, SPAN_STRING, SPAN_CODE])
        self.assertEqual(text[spans[1].start : spans[1].end], '"a ${ "b" + "}" } c"')

    def test_spans_cover_the_whole_text(self) -> None:
        text = "a = 1; # note\nb = ''x''; /* c */"
        spans = scan_spans(text)
        self.assertEqual("".join(text[s.start : s.end] for s in spans), text)
        self.assertIn(SPAN_COMMENT, [span.kind for span in spans])
        self.assertEqual(spans[0].start, 0)
        self.assertEqual(spans[-1].end, len(text))

    def test_find_meta_block_ignores_braces_in_strings(self) -> None:
        text = 'meta = with lib; { d = "{"; }; rest'
        block = find_meta_block(text)
        self.assertIsNotNone(block)
        self.assertEqual(text[block.open_brace : block.end], '{ d = "{"; }')


if __name__ == "__main__":
    unittest.main()
