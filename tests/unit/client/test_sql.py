"""
Unit tests for incremental query rewriting.
"""

import pytest

from records_client.errors import ConfigurationError
from records_client.models import CursorType, QuerySpec
from records_client.sql import cursor_literal, incremental_query, result_column


def _spec(query, column="emp_no", ctype="NUMBER", initial=None):
    return QuerySpec(
        query_id="Q2", query=query, cursor_column=column, cursor_type=ctype, initial_value=initial
    )


def test_snapshot_query_runs_verbatim():
    q = QuerySpec(query_id="Q1", query="Select * from departments")
    assert incremental_query(q, None) == "Select * from departments"
    assert incremental_query(q, "42") == "Select * from departments"


def test_first_run_uses_initial_value():
    spec = _spec("Select * from dept_manager", initial="3")
    assert (
        incremental_query(spec, None)
        == "Select * from dept_manager where emp_no > 3 order by emp_no asc;"
    )


def test_checkpoint_overrides_initial_value():
    spec = _spec("Select * from dept_manager", initial="3")
    assert (
        incremental_query(spec, "7")
        == "Select * from dept_manager where emp_no > 7 order by emp_no asc;"
    )


def test_existing_filter_gets_and_clause():
    spec = _spec("select * from dept_manager WHERE dept_no = 'd001';", initial="0")
    assert incremental_query(spec, None) == (
        "select * from dept_manager WHERE dept_no = 'd001' and emp_no > 0 order by emp_no asc;"
    )


def test_timestamp_cursor_is_quoted():
    spec = _spec(
        "Select * from dept_manager",
        column="emp_dob",
        ctype="TIMESTAMP",
        initial="2006-01-02 15:04:05",
    )
    assert incremental_query(spec, None) == (
        "Select * from dept_manager where emp_dob > '2006-01-02 15:04:05' order by emp_dob asc;"
    )


def test_timestamp_quotes_are_escaped():
    assert cursor_literal("it's", CursorType.TIMESTAMP) == "'it''s'"


def test_numeric_checkpoint_must_be_numeric():
    with pytest.raises(ConfigurationError):
        cursor_literal("1 or 1=1", CursorType.NUMBER)
    with pytest.raises(ConfigurationError):
        cursor_literal("NaN", CursorType.NUMBER)
    assert cursor_literal(" 42.5 ", CursorType.NUMBER) == "42.5"


def test_no_checkpoint_and_no_initial_value_reads_everything_in_order():
    spec = _spec("select * from dept_manager")
    assert incremental_query(spec, None) == "select * from dept_manager order by emp_no asc;"


def test_where_inside_identifier_is_not_a_filter():
    spec = _spec("select * from somewhere_table", initial="1")
    assert " where emp_no > 1 " in incremental_query(spec, None)


@pytest.mark.parametrize(
    "cursor_column",
    ["emp_no", "dept_manager.emp_no", "public.dept_manager.emp_no", '"emp_no"', "EMP_NO", 'd."emp_no"'],
)
def test_result_column_matches_bare_name(cursor_column):
    assert result_column(cursor_column, ["emp_no", "dept_no"]) == "emp_no"


def test_result_column_quoted_keeps_case():
    assert result_column('"EmpNo"', ["EmpNo", "empno"]) == "EmpNo"
    assert result_column('"EmpNo"', ["empno"]) is None
    assert result_column("EmpNo", ["empno"]) == "empno"


def test_result_column_missing():
    assert result_column("hire_date", ["emp_no"]) is None
