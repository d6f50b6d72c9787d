"""
Equation Editor CLI Tests

Exercises export and import end to end with the fake engine, plus the
argument handling of ``main()``.
"""

import json
import sys

import pytest

import equation_editor
from document_parser import parse_document
from equation_editor import export_document, import_artifacts
from project_file import load_project, new_project, save_project
from svg_codec import decode_svg


class TestExport:

    def test_exports_one_svg_per_equation(self, tmp_path, sample_document, fake_engine):
        paths, failures = export_document(sample_document, tmp_path,
                                          engine=fake_engine)

        assert failures == []
        assert [p.name for p in paths] == ["eq_energy.svg", "eq1.svg", "eq2.svg"]
        artifact = decode_svg(paths[1].read_text(encoding="utf-8"))
        assert artifact.equations[0].label == "eq1"
        assert 'fill="rgb(0, 128, 255)"' in paths[1].read_text(encoding="utf-8")

    def test_failures_reported(self, tmp_path, fake_engine, capsys):
        paths, failures = export_document("ok\n---\nFAIL", tmp_path,
                                          engine=fake_engine)

        assert len(paths) == 1
        assert failures == [("eq2", "Undefined control sequence")]
        assert "1 rendered, 1 failed" in capsys.readouterr().out

    def test_single_equation(self, tmp_path, sample_document, fake_engine):
        paths, _ = export_document(sample_document, tmp_path, engine=fake_engine,
                                   only_label="eq:energy")

        assert [p.name for p in paths] == ["eq_energy.svg"]

    def test_unknown_label(self, tmp_path, sample_document, fake_engine):
        with pytest.raises(ValueError):
            export_document(sample_document, tmp_path, engine=fake_engine,
                            only_label="missing")

    def test_inline_display_mode_recorded(self, tmp_path, fake_engine):
        paths, _ = export_document("x", tmp_path, engine=fake_engine,
                                   display_mode="inline")

        assert decode_svg(paths[0].read_bytes()).equations[0].display_mode == "inline"


class TestImport:

    def test_export_then_import(self, tmp_path, sample_document, fake_engine):
        paths, _ = export_document(sample_document, tmp_path, engine=fake_engine)
        text = import_artifacts(paths)
        original = parse_document(sample_document)
        reimported = parse_document(text)

        assert [eq.latex for eq in reimported.equations] == \
            [eq.latex for eq in original.equations]
        assert [eq.label for eq in reimported.equations] == \
            [eq.label for eq in original.equations]


class TestMain:

    def test_list(self, tmp_path, sample_document, monkeypatch, capsys):
        doc = tmp_path / "doc.tex"
        doc.write_text(sample_document, encoding="utf-8")
        monkeypatch.setattr(sys, "argv", ["equation-editor", "-i", str(doc), "--list"])
        equation_editor.main()

        data = json.loads(capsys.readouterr().out)
        assert data["frontmatter"]["color"] == "#FF0000"
        assert [eq["label"] for eq in data["equations"]] == ["eq:energy", "eq1", "eq2"]

    def test_list_project_file(self, tmp_path, monkeypatch, capsys):
        path = save_project(new_project("a\n---\nb"), tmp_path / "p.json")
        monkeypatch.setattr(sys, "argv", ["equation-editor", "-i", str(path), "--list"])
        equation_editor.main()

        data = json.loads(capsys.readouterr().out)
        assert [eq["latex"] for eq in data["equations"]] == ["a", "b"]

    def test_import_to_project(self, tmp_path, fake_engine, monkeypatch):
        paths, _ = export_document("a\n---\nb", tmp_path, engine=fake_engine)
        target = tmp_path / "restored.json"
        monkeypatch.setattr(sys, "argv", ["equation-editor", "--import-svg",
                                          *map(str, paths), "-n", str(target)])
        equation_editor.main()

        assert load_project(target).document == "a\n---\nb\n"

    def test_missing_input(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["equation-editor"])

        with pytest.raises(SystemExit):
            equation_editor.main()
