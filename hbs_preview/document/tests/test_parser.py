"""Tests for the error-tolerant JSONC parser."""

import json

import pytest

from hbs_preview.document.models import (
    ArrayNode,
    NodeType,
    ObjectNode,
    ParseErrorCode,
    PropertyNode,
    StringNode,
)
from hbs_preview.document.parser import MAX_NESTING_DEPTH, Scanner, Token, node_value, parse


def shape(tree, node=None):
    """Structure of a subtree without offsets, for comparing two parses."""
    node = tree.root if node is None else node
    if node is None:
        return None
    if node.type in (NodeType.OBJECT, NodeType.ARRAY, NodeType.PROPERTY):
        return (node.type, [shape(tree, child) for child in tree.children_of(node)])
    return (node.type, node.value)


# ============================================================================
# Scanner
# ============================================================================


class TestScanner:
    """Token-level behaviour."""

    def tokens(self, text):
        scanner = Scanner(text)
        result = []
        while scanner.scan() != Token.EOF:
            result.append((scanner.token, scanner.value))
        return result

    def test_punctuation_and_keywords(self):
        kinds = [t for t, _ in self.tokens('{}[],:true false null')]
        assert kinds == [
            Token.OPEN_BRACE, Token.CLOSE_BRACE, Token.OPEN_BRACKET,
            Token.CLOSE_BRACKET, Token.COMMA, Token.COLON, Token.TRUE,
            Token.TRIVIA, Token.FALSE, Token.TRIVIA, Token.NULL,
        ]

    def test_string_escapes(self):
        [(token, value)] = self.tokens(r'"a\"b\\c\né"')
        assert token == Token.STRING
        assert value == 'a"b\\c\né'

    def test_surrogate_pair_is_one_code_point(self):
        [(_, value)] = self.tokens(r'"\ud83d\ude00"')
        assert value == "\U0001F600"

    def test_numbers(self):
        values = [v for t, v in self.tokens("1 -2 3.5 1e3") if t == Token.NUMBER]
        assert values == [1, -2, 3.5, 1000.0]
        assert isinstance(values[0], int)

    def test_comments(self):
        kinds = [t for t, _ in self.tokens("// line\n/* block */")]
        assert kinds == [Token.LINE_COMMENT, Token.TRIVIA, Token.BLOCK_COMMENT]

    def test_unterminated_string_stops_at_newline(self):
        scanner = Scanner('"abc\n1')
        assert scanner.scan() == Token.STRING
        assert scanner.error == ParseErrorCode.UNEXPECTED_END_OF_STRING
        assert scanner.pos == 4


# ============================================================================
# Tree building
# ============================================================================


class TestParse:
    """Valid documents."""

    def test_object_structure_and_offsets(self):
        text = '{"name": "Al", "age": 3}'
        result = parse(text)
        tree = result.tree
        assert result.ok
        root = tree.root
        assert isinstance(root, ObjectNode)
        assert (root.offset, root.length) == (0, len(text))

        name_prop = tree.get(root.children[0])
        assert isinstance(name_prop, PropertyNode)
        assert tree.property_key(name_prop) == "name"
        assert tree.source(name_prop) == '"name": "Al"'
        value = tree.value_of(name_prop)
        assert isinstance(value, StringNode)
        assert value.value == "Al"
        assert tree.source(value) == '"Al"'

    def test_parent_links(self):
        tree = parse('{"a": [1, {"b": true}]}').tree
        for node in tree.walk():
            for child in tree.children_of(node):
                assert child.parent == node.id

    def test_offsets_round_trip_to_source(self):
        text = '{\n  "a": [1, 2.5, "x"],\n  "b": {"c": null, "d": false}\n}'
        tree = parse(text).tree
        for node in tree.walk():
            if node.is_scalar:
                assert json.loads(tree.source(node)) == node.value

    def test_node_value_matches_json_loads(self):
        text = '{"a": [1, {"b": "c"}], "d": null, "e": -1.5e2}'
        result = parse(text)
        assert node_value(result.tree) == json.loads(text)

    def test_scalar_root(self):
        result = parse("  42 ")
        assert result.ok
        assert result.tree.root.value == 42
        assert result.tree.root.offset == 2

    def test_version_stamped(self):
        assert parse("{}", version=7).tree.version == 7

    def test_walk_is_source_order(self):
        tree = parse('{"a": 1, "b": [2, 3]}').tree
        scalars = [n.value for n in tree.walk() if n.is_scalar]
        assert scalars == ["a", 1, "b", 2, 3]


class TestJsonc:
    """Comments and trailing commas."""

    def test_trailing_comma_and_line_comment_match_strict_json(self):
        loose = '{\n  "a": 1, // first\n  "b": [1, 2,],\n}'
        strict = '{\n  "a": 1,\n  "b": [1, 2]\n}'
        loose_result = parse(loose)
        strict_result = parse(strict)
        assert loose_result.diagnostics == []
        assert shape(loose_result.tree) == shape(strict_result.tree)
        assert node_value(loose_result.tree) == node_value(strict_result.tree)

    def test_block_comment(self):
        result = parse('{/* x */"a": /* y */ 1}')
        assert result.ok
        assert node_value(result.tree) == {"a": 1}

    def test_comments_rejected_when_disabled(self):
        result = parse('{"a": 1 // no\n}', allow_comments=False)
        assert [d.code for d in result.diagnostics] == [ParseErrorCode.INVALID_COMMENT_TOKEN]
        assert node_value(result.tree) == {"a": 1}

    def test_trailing_comma_rejected_when_disabled(self):
        result = parse("[1, 2,]", allow_trailing_comma=False)
        assert [d.code for d in result.diagnostics] == [ParseErrorCode.VALUE_EXPECTED]
        assert node_value(result.tree) == [1, 2]


class TestRecovery:
    """Broken documents still produce a usable tree."""

    def test_missing_value_keeps_siblings(self):
        result = parse('{"a": , "b": 2}')
        assert [d.code for d in result.diagnostics] == [ParseErrorCode.VALUE_EXPECTED]
        assert node_value(result.tree) == {"b": 2}
        # The broken property is still in the tree, without a value.
        first = result.tree.get(result.tree.root.children[0])
        assert first.value is None

    def test_missing_comma(self):
        result = parse('{"a": 1 "b": 2}')
        assert ParseErrorCode.COMMA_EXPECTED in [d.code for d in result.diagnostics]
        assert node_value(result.tree) == {"a": 1, "b": 2}

    def test_missing_colon(self):
        result = parse('{"a" 1, "b": 2}')
        assert result.diagnostics[0].code == ParseErrorCode.COLON_EXPECTED
        assert node_value(result.tree) == {"b": 2}

    def test_unclosed_object(self):
        result = parse('{"a": [1, 2]')
        assert [d.code for d in result.diagnostics] == [ParseErrorCode.CLOSE_BRACE_EXPECTED]
        assert node_value(result.tree) == {"a": [1, 2]}

    def test_unclosed_array(self):
        result = parse("[1, 2")
        assert [d.code for d in result.diagnostics] == [ParseErrorCode.CLOSE_BRACKET_EXPECTED]
        assert isinstance(result.tree.root, ArrayNode)

    def test_invalid_symbol(self):
        result = parse('{"a": 1, @}')
        codes = [d.code for d in result.diagnostics]
        assert ParseErrorCode.INVALID_SYMBOL in codes

    def test_trailing_content(self):
        result = parse("{} {}")
        assert [d.code for d in result.diagnostics] == [ParseErrorCode.END_OF_FILE_EXPECTED]

    @pytest.mark.parametrize("text", ["", "   ", "// only a comment"])
    def test_empty_document(self, text):
        result = parse(text)
        assert result.tree.root is None
        assert [d.code for d in result.diagnostics] == [ParseErrorCode.VALUE_EXPECTED]

    def test_invalid_number_format(self):
        result = parse("[01]")
        assert [d.code for d in result.diagnostics] == [ParseErrorCode.INVALID_NUMBER_FORMAT]

    def test_diagnostic_format_has_line_and_column(self):
        text = '{\n  "a": }'
        diagnostic = parse(text).diagnostics[0]
        assert diagnostic.format(text) == "Value expected at 2:8"
        assert diagnostic.to_dict()["code"] == "ValueExpected"


class TestNesting:
    """Deeply nested documents are cut off instead of overflowing the stack."""

    def test_deep_array_is_truncated(self):
        depth = 3000
        text = "[" * depth + "]" * depth
        result = parse(text)
        assert [d.code for d in result.diagnostics] == [ParseErrorCode.NESTING_TOO_DEEP]
        assert result.diagnostics[0].offset == MAX_NESTING_DEPTH
        assert len(result.tree) == MAX_NESTING_DEPTH + 1
        innermost = list(result.tree.walk())[-1]
        assert innermost.children == []
        assert innermost.end == depth + (depth - MAX_NESTING_DEPTH)
        assert result.tree.root.length == len(text)

    def test_deep_object_keeps_later_siblings(self):
        depth = MAX_NESTING_DEPTH + 10
        text = '{"deep": ' + '{"a": ' * depth + "1" + "}" * depth + ', "after": 2}'
        result = parse(text)
        assert [d.code for d in result.diagnostics] == [ParseErrorCode.NESTING_TOO_DEEP]
        assert node_value(result.tree)["after"] == 2

    def test_unclosed_deep_array(self):
        result = parse("[" * (MAX_NESTING_DEPTH + 5))
        codes = [d.code for d in result.diagnostics]
        assert codes[0] == ParseErrorCode.NESTING_TOO_DEEP
        assert ParseErrorCode.CLOSE_BRACKET_EXPECTED in codes

    def test_depth_at_limit_is_accepted(self):
        text = "[" * MAX_NESTING_DEPTH + "]" * MAX_NESTING_DEPTH
        result = parse(text)
        assert result.diagnostics == []
        assert len(result.tree) == MAX_NESTING_DEPTH
