"""
Document Parser Unit Tests

Covers section splitting, frontmatter classification, labels, colors,
line ranges, identity preservation across re-parses and serialization.
"""

import pytest

from document_parser import (
    PLACEHOLDER_HEADER,
    Equation,
    equation_at_line,
    extract_label,
    is_frontmatter,
    join_sections,
    parse_document,
    parse_frontmatter,
    serialize_document,
)


class TestSections:

    def test_empty_document(self):
        parsed = parse_document("")

        assert parsed.equations == []
        assert parsed.frontmatter.is_empty()

    def test_whitespace_only_document(self):
        parsed = parse_document("\n\n  \n---\n\n")

        assert parsed.equations == []
        assert parsed.frontmatter.is_empty()

    def test_final_section_without_trailing_separator(self):
        parsed = parse_document("a\n---\nb")

        assert [eq.latex for eq in parsed.equations] == ["a", "b"]

    def test_trailing_separator(self):
        parsed = parse_document("a\n---\nb\n---\n")

        assert [eq.latex for eq in parsed.equations] == ["a", "b"]

    def test_separator_variants(self):
        """Three or more hyphens, surrounding whitespace allowed"""
        parsed = parse_document("a\n  -----  \nb\n--\nc")

        assert [eq.latex for eq in parsed.equations] == ["a", "b\n--\nc"]

    def test_blank_lines_trimmed_from_latex(self):
        parsed = parse_document("\n\n  x^2  \n\n")

        assert parsed.equations[0].latex == "x^2"

    def test_line_ranges(self):
        text = "x\n---\n\ny\nz\n---\nw"
        parsed = parse_document(text)

        ranges = [(eq.start_line, eq.end_line) for eq in parsed.equations]
        assert ranges == [(0, 0), (2, 4), (6, 6)]

    def test_line_ranges_relative_to_frontmatter_document(self, sample_document):
        parsed = parse_document(sample_document)

        ranges = [(eq.start_line, eq.end_line) for eq in parsed.equations]
        assert ranges == [(4, 4), (6, 7), (9, 10)]
        for eq in parsed.equations:
            assert eq.start_line <= eq.end_line


class TestFrontmatter:

    def test_classification(self):
        assert is_frontmatter("color: red\ndefine.brand: #FF0000")
        assert is_frontmatter("% settings\ncolor: red")
        assert not is_frontmatter(r"color: \red")
        assert not is_frontmatter("x^2 + 1")

    def test_comment_lines_ignored(self):
        """Backslashes inside comments do not disqualify frontmatter"""
        content = "% uses \\color later\ncolor: red\n% define.skip: blue"
        fm = parse_frontmatter(content)

        assert is_frontmatter(content)
        assert fm.color == "red"
        assert fm.color_presets == {}

    def test_global_color_references_preset(self):
        fm = parse_frontmatter("color: $brand\ndefine.brand: #FF0000AA")

        assert fm.color == "#FF0000"
        assert fm.color_presets == {"brand": "#FF0000AA"}

    def test_unknown_keys_ignored(self):
        fm = parse_frontmatter("title: Notes\ncolor: blue")

        assert fm.color == "blue"
        assert fm.color_presets == {}

    def test_frontmatter_only_document(self):
        parsed = parse_document("color: red\ndefine.a: blue")

        assert parsed.equations == []
        assert parsed.frontmatter.color == "red"
        assert parsed.frontmatter.color_presets == {"a": "blue"}

    def test_only_first_section_is_frontmatter(self):
        parsed = parse_document("x\n---\ncolor: red")

        assert parsed.frontmatter.is_empty()
        assert [eq.latex for eq in parsed.equations] == ["x", "color: red"]

    def test_first_section_with_latex_is_an_equation(self):
        parsed = parse_document("a: \\alpha\n---\nb")

        assert parsed.frontmatter.is_empty()
        assert len(parsed.equations) == 2

    def test_leading_separator_does_not_consume_frontmatter_slot(self):
        parsed = parse_document("---\ncolor: red\n---\nx")

        assert parsed.frontmatter.color == "red"
        assert [eq.latex for eq in parsed.equations] == ["x"]


class TestLabels:

    def test_auto_numbering(self):
        parsed = parse_document("a\n---\nb\n---\nc")

        assert [eq.label for eq in parsed.equations] == ["eq1", "eq2", "eq3"]

    def test_explicit_labels_do_not_consume_numbers(self):
        parsed = parse_document("a\n---\nb \\label{eq:b}\n---\nc")

        assert [eq.label for eq in parsed.equations] == ["eq1", "eq:b", "eq2"]

    def test_label_kept_in_latex(self):
        parsed = parse_document("x \\label{sec.main-1}")

        assert parsed.equations[0].label == "sec.main-1"
        assert "\\label{sec.main-1}" in parsed.equations[0].latex

    def test_extract_label(self):
        assert extract_label(r"x \label{a:b.c-d_1}") == "a:b.c-d_1"
        assert extract_label(r"x \label{has space}") is None
        assert extract_label("x") is None


class TestColors:

    def test_preset_round_trip(self):
        """A preset with alpha resolves to the stripped hex in the body"""
        parsed = parse_document("define.brand: #FF0000AA\n---\n\\color{brand} x")

        assert parsed.equations[0].latex == "\\color{#FF0000} x"

    def test_equation_color_from_directive(self):
        parsed = parse_document("x^2\n% color: blue")

        assert parsed.equations[0].color == "blue"

    def test_non_terminal_directive_ignored(self):
        parsed = parse_document("% color: blue\nx^2")

        assert parsed.equations[0].color is None

    def test_directive_resolves_presets(self, sample_document):
        parsed = parse_document(sample_document)
        energy, pythagoras, integral = parsed.equations

        assert parsed.frontmatter.color == "#FF0000"
        assert energy.color is None
        assert pythagoras.color == "rgb(0, 128, 255)"
        assert pythagoras.latex.startswith("\\color{rgb(0, 128, 255)}")
        assert integral.color is None

    def test_directive_with_missing_preset(self):
        parsed = parse_document("x\n% color: $nope")

        assert parsed.equations[0].color == "$nope"

    def test_strict_mode(self):
        parsed = parse_document("define.brand: #FF0000AA\n---\n\\color{brand} x",
                                color_mode="strict")

        assert parsed.equations[0].latex == "\\color[HTML]{FF0000} x"


class TestIdentity:

    def test_ids_are_unique_and_non_empty(self):
        parsed = parse_document("a\n---\nb\n---\nc")
        ids = [eq.id for eq in parsed.equations]

        assert all(ids)
        assert len(set(ids)) == 3

    def test_unchanged_document_keeps_ids(self, sample_document):
        first = parse_document(sample_document)
        second = parse_document(sample_document, first.equations)

        assert [eq.id for eq in second.equations] == [eq.id for eq in first.equations]

    def test_edit_with_explicit_label_keeps_id(self):
        first = parse_document("E = mc^2 \\label{energy}\n---\ny")
        second = parse_document("E = m c^{2} \\label{energy}\n---\ny",
                                first.equations)

        assert second.equations[0].id == first.equations[0].id
        assert second.equations[1].id == first.equations[1].id

    def test_unlabeled_match_by_content_across_reorder(self):
        first = parse_document("a\n---\nb")
        second = parse_document("b\n---\na", first.equations)

        assert second.equations[0].id == first.equations[1].id
        assert second.equations[1].id == first.equations[0].id

    def test_edited_unlabeled_equation_gets_new_id(self):
        first = parse_document("a\n---\nb")
        second = parse_document("a\n---\nb + 1", first.equations)

        assert second.equations[0].id == first.equations[0].id
        assert second.equations[1].id not in {eq.id for eq in first.equations}

    def test_match_uses_rewritten_latex(self):
        text = "define.brand: red\n---\n\\color{brand} x"
        first = parse_document(text)
        second = parse_document(text, first.equations)

        assert second.equations[0].id == first.equations[0].id

    def test_duplicate_bodies_first_match_wins(self):
        """Two identical bodies both take the first previous id (accepted limitation)"""
        previous = [
            Equation(id="A", label="eq1", latex="x", start_line=0, end_line=0),
            Equation(id="B", label="eq2", latex="x", start_line=2, end_line=2),
        ]
        parsed = parse_document("x\n---\nx", previous)

        assert [eq.id for eq in parsed.equations] == ["A", "A"]

    def test_removed_section_disappears(self):
        first = parse_document("a\n---\nb\n---\nc")
        second = parse_document("a\n---\nc", first.equations)

        assert [eq.latex for eq in second.equations] == ["a", "c"]
        assert second.equations[1].id == first.equations[2].id


class TestSerialize:

    def test_idempotent_round_trip(self, sample_document):
        first = parse_document(sample_document)
        second = parse_document(serialize_document(first), first.equations)

        def fields(parsed):
            return [(eq.label, eq.latex, eq.color) for eq in parsed.equations]

        assert fields(second) == fields(first)
        assert second.frontmatter == first.frontmatter
        assert [eq.id for eq in second.equations] == [eq.id for eq in first.equations]

    def test_empty(self):
        assert serialize_document(parse_document("")) == ""

    def test_without_frontmatter(self):
        text = serialize_document(parse_document("a\n---\nb"))

        assert text == "a\n---\nb\n"

    def test_key_value_equation_stays_an_equation(self):
        """A first equation shaped like `key: value` survives re-parsing"""
        first = parse_document("title: Notes\n---\nP: x > 0\n---\ny")
        text = serialize_document(first)
        second = parse_document(text)

        assert text.startswith(PLACEHOLDER_HEADER + "\n---\n")
        assert second.frontmatter.is_empty()
        assert [(eq.label, eq.latex) for eq in second.equations] == \
            [(eq.label, eq.latex) for eq in first.equations]
        assert serialize_document(second) == text

    def test_join_sections(self):
        assert join_sections(None, []) == ""
        assert join_sections("color: red", ["k: v"]) == "color: red\n---\nk: v\n"
        assert join_sections(None, ["k: v"]) == \
            f"{PLACEHOLDER_HEADER}\n---\nk: v\n"
        assert join_sections(None, ["x \\le y: z"]) == "x \\le y: z\n"


class TestEquationAtLine:

    @pytest.fixture
    def equations(self):
        return parse_document("a\n---\nb\nc\n---\nd").equations

    def test_lookup(self, equations):
        assert equation_at_line(equations, 0).latex == "a"
        assert equation_at_line(equations, 3).latex == "b\nc"
        assert equation_at_line(equations, 5).latex == "d"

    def test_separator_line_has_no_equation(self, equations):
        assert equation_at_line(equations, 1) is None


class TestToDict:

    def test_camel_case_keys(self):
        parsed = parse_document("x\n% color: red")
        data = parsed.to_dict()

        assert data["frontmatter"] == {}
        eq = data["equations"][0]
        assert eq["startLine"] == 0
        assert eq["endLine"] == 1
        assert eq["color"] == "red"
        assert "renderedSVG" not in eq
