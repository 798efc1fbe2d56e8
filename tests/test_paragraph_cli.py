#!/usr/bin/env python3
"""
Tests for the parse_paragraphs / apply_paragraph_edits command line workflow.

Export paragraphs to JSONL, edit some lines, apply them back and check the
result plus the _fail.jsonl file written for skipped edits.
"""

import json
import sys

import pytest

from _docx_helpers import build_itinerary_document, make_three_paragraph_docx, read_entry

import apply_paragraph_edits  # type: ignore[import-not-found]
import parse_paragraphs  # type: ignore[import-not-found]
from apply_paragraph_edits import load_edits_file  # type: ignore[import-not-found]
from docx_patch.common import InputValidationError, compute_source_hash  # type: ignore[import-not-found]
from docx_patch.paragraphs import parse_paragraphs as parse_xml  # type: ignore[import-not-found]

DAY1_TEXT = "Walking tour of the old city of Jerusalem, ending at the Western Wall."


def _texts(data: bytes):
    return [p.text for p in parse_xml(read_entry(data, 'word/document.xml').decode('utf-8'))]


def _read_jsonl(path):
    with open(path, 'r', encoding='utf-8') as f:
        return [json.loads(line) for line in f if line.strip()]


def _write_jsonl(path, entries):
    with open(path, 'w', encoding='utf-8') as f:
        for entry in entries:
            f.write(json.dumps(entry, ensure_ascii=False) + '\n')


@pytest.fixture
def trip_docx(tmp_path):
    path = tmp_path / 'trip.docx'
    path.write_bytes(make_three_paragraph_docx())
    return path


class TestBuildExport:
    """Tests for parse_paragraphs.build_export"""

    def test_exhaustive(self):
        data = make_three_paragraph_docx()
        meta, *entries = parse_paragraphs.build_export(data, 'trip.docx')

        assert meta['type'] == 'meta'
        assert meta['source_hash'] == compute_source_hash(data)
        assert meta['paragraph_count'] == 3
        assert [e['text'] for e in entries] == ['a', 'hello world', 'c']
        assert all(e['start'] < e['end'] for e in entries)

    def test_sections(self):
        data = build_itinerary_document(days=[("Day 1", [DAY1_TEXT])])
        meta, *entries = parse_paragraphs.build_export(data, 'trip.docx', policy='sections')

        assert meta['policy'] == 'sections'
        assert len(entries) == 1
        assert entries[0]['key'] == 'day1'
        assert entries[0]['text'] == DAY1_TEXT


class TestLoadEditsFile:
    """Tests for load_edits_file"""

    def test_json_mapping(self, tmp_path):
        path = tmp_path / 'edits.json'
        path.write_text(json.dumps({'0': 'x', '2': 'y'}), encoding='utf-8')
        meta, items, section_texts = load_edits_file(path)

        assert meta == {}
        assert items == [{'index': '0', 'text': 'x'}, {'index': '2', 'text': 'y'}]
        assert section_texts == {}

    def test_json_envelope(self, tmp_path):
        path = tmp_path / 'edits.json'
        path.write_text(json.dumps({'replacements': {'1': 'x'}, 'sourceHash': 'sha256:abc'}),
                        encoding='utf-8')
        meta, items, _ = load_edits_file(path)

        assert meta['source_hash'] == 'sha256:abc'
        assert items == [{'index': '1', 'text': 'x'}]

    def test_jsonl_with_section_keys(self, tmp_path):
        path = tmp_path / 'edits.jsonl'
        _write_jsonl(path, [
            {'type': 'meta', 'source_hash': 'sha256:abc'},
            {'index': 0, 'text': 'x'},
            {'key': 'day1', 'text': 'y'},
        ])
        meta, items, section_texts = load_edits_file(path)

        assert meta['source_hash'] == 'sha256:abc'
        assert items == [{'index': 0, 'text': 'x'}]
        assert section_texts == {'day1': 'y'}

    def test_jsonl_invalid_line(self, tmp_path):
        path = tmp_path / 'edits.jsonl'
        path.write_text('{"index": 0, "text": "x"}\n{broken\n', encoding='utf-8')

        with pytest.raises(InputValidationError) as exc_info:
            load_edits_file(path)
        assert 'line 2' in exc_info.value.message

    def test_json_not_object(self, tmp_path):
        path = tmp_path / 'edits.json'
        path.write_text('[1, 2]', encoding='utf-8')

        with pytest.raises(InputValidationError):
            load_edits_file(path)

    def test_jsonl_line_not_object(self, tmp_path):
        path = tmp_path / 'edits.jsonl'
        path.write_text('{"index": 0, "text": "x"}\n5\n', encoding='utf-8')

        with pytest.raises(InputValidationError) as exc_info:
            load_edits_file(path)
        assert 'Line 2' in exc_info.value.message

    def test_envelope_items_not_objects(self, tmp_path):
        """A replacements list of bare numbers is rejected once edits are built"""
        path = tmp_path / 'edits.json'
        path.write_text(json.dumps({'replacements': [1, 2]}), encoding='utf-8')
        _, items, section_texts = load_edits_file(path)

        with pytest.raises(InputValidationError):
            apply_paragraph_edits.collect_edits(make_three_paragraph_docx(), items, section_texts)

    def test_envelope_replacements_wrong_type(self, tmp_path):
        path = tmp_path / 'edits.json'
        path.write_text(json.dumps({'replacements': 'rewrite'}), encoding='utf-8')

        with pytest.raises(InputValidationError):
            load_edits_file(path)


class TestExportEditApply:
    """Export, edit and apply through both command lines"""

    def test_round_trip(self, trip_docx, tmp_path, monkeypatch):
        export_path = tmp_path / 'trip_paragraphs.jsonl'
        monkeypatch.setattr(sys, 'argv', ['parse_paragraphs.py', str(trip_docx)])
        assert parse_paragraphs.main() == 0
        assert export_path.exists()

        meta, *entries = _read_jsonl(export_path)
        entries[1]['text'] = 'hello, edited world'
        _write_jsonl(export_path, [meta] + entries)

        monkeypatch.setattr(sys, 'argv', ['apply_paragraph_edits.py', str(trip_docx), str(export_path)])
        assert apply_paragraph_edits.main() == 0

        output = tmp_path / 'trip_enhanced.docx'
        assert _texts(output.read_bytes()) == ['a', 'hello, edited world', 'c']
        assert not (tmp_path / 'trip_paragraphs_fail.jsonl').exists()

    def test_skipped_edits_saved(self, trip_docx, tmp_path, monkeypatch):
        edits_path = tmp_path / 'edits.json'
        edits_path.write_text(json.dumps({'0': 'A', '9': 'missing'}), encoding='utf-8')
        monkeypatch.setattr(sys, 'argv', ['apply_paragraph_edits.py', str(trip_docx), str(edits_path)])

        assert apply_paragraph_edits.main() == 0

        meta, *failed = _read_jsonl(tmp_path / 'edits_fail.jsonl')
        assert meta['failed_count'] == 1
        assert meta['total_count'] == 2
        assert failed[0]['index'] == 9
        assert 'out of range' in failed[0]['_error']

    def test_hash_mismatch(self, trip_docx, tmp_path, monkeypatch, capsys):
        edits_path = tmp_path / 'edits.jsonl'
        _write_jsonl(edits_path, [
            {'type': 'meta', 'source_hash': 'sha256:' + '0' * 64},
            {'index': 0, 'text': 'A'},
        ])
        monkeypatch.setattr(sys, 'argv', ['apply_paragraph_edits.py', str(trip_docx), str(edits_path)])

        assert apply_paragraph_edits.main() == 1
        assert 'status 409' in capsys.readouterr().err
        assert not (tmp_path / 'trip_enhanced.docx').exists()

    def test_dry_run(self, trip_docx, tmp_path, monkeypatch):
        edits_path = tmp_path / 'edits.json'
        edits_path.write_text(json.dumps({'0': 'A'}), encoding='utf-8')
        monkeypatch.setattr(sys, 'argv', [
            'apply_paragraph_edits.py', str(trip_docx), str(edits_path), '--dry-run'
        ])

        assert apply_paragraph_edits.main() == 0
        assert not (tmp_path / 'trip_enhanced.docx').exists()

    def test_section_export_applied(self, tmp_path, monkeypatch):
        docx_path = tmp_path / 'tour.docx'
        docx_path.write_bytes(build_itinerary_document(days=[("יום 1", [DAY1_TEXT])]))
        export_path = tmp_path / 'tour_paragraphs.jsonl'
        monkeypatch.setattr(sys, 'argv', ['parse_paragraphs.py', str(docx_path), '--policy', 'sections'])
        assert parse_paragraphs.main() == 0

        meta, section = _read_jsonl(export_path)
        _write_jsonl(export_path, [meta, {'key': section['key'], 'text': 'Rewritten first day.'}])
        monkeypatch.setattr(sys, 'argv', ['apply_paragraph_edits.py', str(docx_path), str(export_path)])
        assert apply_paragraph_edits.main() == 0

        texts = _texts((tmp_path / 'tour_enhanced.docx').read_bytes())
        assert 'Rewritten first day.' in texts
        assert DAY1_TEXT not in texts
