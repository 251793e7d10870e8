"""Tests for helpers in core.utils and the result model."""

import re
import time

from script_harness.core.models import ErrorLocation, Result, ResultKind
from script_harness.core.utils import infer_lang_from_entry, new_session_id, parse_error_location


def test_new_session_id_format():
    assert re.fullmatch(r"\d+-[0-9a-f]{6}", new_session_id())


def test_infer_lang_from_entry():
    assert infer_lang_from_entry("loop.kts") == "kotlin"
    assert infer_lang_from_entry("MAIN.PY") == "python"
    assert infer_lang_from_entry("run.sh") == "bash"
    assert infer_lang_from_entry("notes.txt") is None
    assert infer_lang_from_entry("notes.txt", default="kotlin") == "kotlin"


def test_parse_kotlin_compiler_location():
    loc = parse_error_location("script.kts:2:15: error: unresolved reference: printn")
    assert loc == ErrorLocation(
        file="script.kts",
        line=2,
        column=15,
        text="script.kts:2:15: error: unresolved reference: printn",
    )


def test_parse_python_traceback_location():
    loc = parse_error_location('  File "/tmp/ws/main.py", line 7, in <module>')
    assert loc.file == "/tmp/ws/main.py"
    assert loc.line == 7
    assert loc.column is None


def test_plain_line_has_no_location():
    assert parse_error_location("Line 3: all good") is None


def test_result_to_dict_omits_empty_fields():
    res = Result(kind=ResultKind.SUCCESS, total_lines=3, elapsed_ms=12, exit_code=0)
    assert res.to_dict() == {"kind": "success", "total_lines": 3, "elapsed_ms": 12, "exit_code": 0}
    assert res.ok

    failed = Result(kind=ResultKind.COMPILE_FAILURE, total_lines=0, elapsed_ms=1, message="no such file")
    assert failed.to_dict() == {
        "kind": "compile_failure",
        "total_lines": 0,
        "elapsed_ms": 1,
        "message": "no such file",
    }


def test_long_line_without_whitespace_is_fast():
    t0 = time.monotonic()
    assert parse_error_location("x" * 1_000_000) is None
    assert parse_error_location("a.b" * 100_000 + ".kts:1") is None
    assert time.monotonic() - t0 < 1


def test_location_found_at_start_of_long_line():
    loc = parse_error_location("main.kts:4:2: error: " + "x" * 100_000)
    assert (loc.file, loc.line, loc.column) == ("main.kts", 4, 2)
    assert len(loc.text) <= 512


def test_location_inside_parentheses():
    loc = parse_error_location("\tat Main.run(/tmp/ws/main.kts:12:5)")
    assert loc.file == "/tmp/ws/main.kts"
    assert loc.line == 12


def test_result_to_dict_keeps_location_text():
    loc = ErrorLocation(file="main.py", line=3, column=None, text='File "main.py", line 3, in <module>')
    res = Result(kind=ResultKind.RUNTIME_FAILURE, total_lines=1, elapsed_ms=5, exit_code=1, locations=(loc,))
    assert res.to_dict()["locations"] == [
        {"file": "main.py", "line": 3, "column": None, "text": 'File "main.py", line 3, in <module>'}
    ]
