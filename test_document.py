"""Test script for whole-document evaluation and line editing."""

import pytest

from calc_pad.document import (
    Document,
    Environment,
    ResultKind,
    deserialize_lines,
    evaluate_line,
    serialize_lines,
    shift_line_references,
)
from calc_pad.errors import ErrorKind


def displays(document):
    return [result.display for result in document.results]


def test_new_document_has_one_empty_line():
    document = Document()
    assert len(document) == 1
    assert document.results[0].kind is ResultKind.EMPTY


def test_full_pass_with_variables_and_references():
    document = Document(
        [
            "# Storage plan",
            "servers = 40",
            "disk = 2 TiB",
            "servers * disk to TiB",
            "line3 / 4",
        ]
    )
    assert displays(document) == [None, "40", "2 TiB", "80 TiB", "0.5 TiB"]
    assert document.variables["servers"].magnitude == 40
    assert document.lines[1].assigned_variable == "servers"


def test_errors_stay_on_their_line():
    document = Document(["5 / 0", "1 + 1", "line1 * 2"])
    assert document.results[0].error_kind is ErrorKind.DIVISION_BY_ZERO
    assert document.results[1].display == "2"
    assert document.results[2].error_kind is ErrorKind.UNDEFINED_LINE_REFERENCE


def test_failed_assignment_does_not_define_variable():
    document = Document(["x = 5 / 0", "x * 2"])
    assert "x" not in document.variables
    assert document.results[1].error_kind is ErrorKind.UNDEFINED_VARIABLE


def test_editing_a_line_recomputes_dependents():
    document = Document(["10", "line1 * 2"])
    assert document.results[1].display == "20"
    document.set_line(0, "25")
    assert document.results[1].display == "50"


def test_set_line_grows_document():
    document = Document([])
    document.set_line(2, "5")
    assert len(document) == 3
    assert document.texts == ["", "", "5"]
    with pytest.raises(IndexError):
        document.set_line(-1, "5")


def test_append_line_returns_its_result():
    document = Document([])
    document.append_line("x = 3")
    result = document.append_line("x * 2")
    assert result.display == "6"


def test_insert_renumbers_references():
    document = Document(["10", "line1 * 2"])
    document.insert_line(0, "5")
    assert document.texts == ["5", "10", "line2 * 2"]
    assert document.results[2].display == "20"


def test_delete_renumbers_references():
    document = Document(["1", "2", "3", "line3 * 2"])
    document.delete_line(0)
    assert document.texts == ["2", "3", "line2 * 2"]
    assert document.results[2].display == "6"


def test_delete_breaks_references_to_removed_line():
    document = Document(["1", "2", "line2 + line1"])
    document.delete_line(1)
    assert document.texts == ["1", "line0 + line1"]
    assert document.results[1].error_kind is ErrorKind.UNDEFINED_LINE_REFERENCE


def test_insert_and_delete_bounds():
    document = Document(["1"])
    with pytest.raises(IndexError):
        document.insert_line(5)
    with pytest.raises(IndexError):
        document.delete_line(1)


def test_shift_line_references_only_touches_whole_words():
    shifted = shift_line_references("line1 + myline2 + line10", start=0, delta=1)
    assert shifted == "line2 + myline2 + line11"
    assert shift_line_references("line1 + line3", start=2, delta=-1) == "line1 + line2"


def test_content_round_trip():
    content = "a = 1\nb = a + 1\n"
    document = Document([])
    document.set_content(content)
    assert len(document) == 3
    assert document.get_content() == content
    assert document.variables["b"].magnitude == 2


def test_serialize_helpers():
    assert deserialize_lines("") == [""]
    assert deserialize_lines("a\r\nb") == ["a", "b"]
    assert serialize_lines(["a", "b"]) == "a\nb"


def test_evaluate_line_against_environment():
    environment = Environment()
    assert evaluate_line("some prose", 0, environment).kind is ResultKind.EMPTY
    result = evaluate_line("rate = 100 QPS", 0, environment)
    assert result.variable == "rate"
    assert environment.variables["rate"].unit.name == "QPS"
    error = evaluate_line("rate + 1 GiB", 1, environment)
    assert error.error_kind is ErrorKind.DIMENSION_MISMATCH
    assert error.message


def test_evaluate_line_rejects_lines_never_evaluated():
    result = evaluate_line("line1 + 4 GiB", 2, Environment())
    assert result.kind is ResultKind.ERROR
    assert result.error_kind is ErrorKind.UNDEFINED_LINE_REFERENCE


def test_evaluate_line_records_results_for_later_lines():
    environment = Environment()
    evaluate_line("10 GiB", 0, environment)
    evaluate_line("", 1, environment)
    result = evaluate_line("line1 + 4 GiB", 2, environment)
    assert result.display == "14 GiB"
    assert [line.raw_text for line in environment.lines] == ["10 GiB", "", "line1 + 4 GiB"]


def test_recompute_records_each_line_once():
    document = Document(["x = 1", "x + 1", "line2 * 3"])
    assert len(document.environment.lines) == 3
    assert document.results[2].display == "6"
