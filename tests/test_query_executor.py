"""Tests for query execution: the filter, sort, limit, project, group, summarize pipeline."""

import pytest

from basequery.query import (
    FilterGroup,
    GroupSpec,
    QuerySpec,
    SortDirection,
    SortSpec,
    ViewNotFoundError,
    ViewSpec,
    compile_query,
    execute_query,
)
from basequery.query.executor import QueryExecutor, index_files


def run(spec, documents, view=None, *, strict=True, **kwargs):
    return execute_query(compile_query(spec, strict=strict), documents, view, **kwargs)


def paths(result):
    return [row.path for row in result.rows]


@pytest.fixture
def scored(make_doc):
    return [
        make_doc("D.md", {"score": 3, "status": "done"}),
        make_doc("B.md", {"score": 7, "status": "active"}),
        make_doc("C.md", {"score": 7, "status": "active"}),
        make_doc("A.md", {"score": 1, "status": "active"}),
    ]


# =============================================================================
# Filtering
# =============================================================================


class TestFiltering:
    def test_global_and_view_filters_both_apply(self, scored):
        spec = QuerySpec(
            filters="score > 2",
            views=[ViewSpec(name="v", filters='status == "active"')],
        )

        assert paths(run(spec, scored)) == ["B.md", "C.md"]

    def test_filter_group(self, scored):
        spec = QuerySpec(
            views=[ViewSpec(name="v", filters=FilterGroup(or_=["score == 1", "score == 3"]))],
        )

        assert paths(run(spec, scored)) == ["A.md", "D.md"]

    def test_strict_error_drops_row(self, scored, make_doc):
        documents = scored + [make_doc("E.md", {"status": "active"})]
        spec = QuerySpec(views=[ViewSpec(name="v", filters="score > 2")])

        result = run(spec, documents)

        assert "E.md" not in paths(result)
        assert result.diagnostics.errors == ["row E.md: Unknown identifier: score"]

    def test_errors_sorted_by_path(self, make_doc):
        documents = [make_doc("Z.md"), make_doc("M.md")]
        spec = QuerySpec(views=[ViewSpec(name="v", filters="missing")])

        result = run(spec, documents)

        assert result.rows == []
        assert [e.split(":")[0] for e in result.diagnostics.errors] == ["row M.md", "row Z.md"]

    def test_non_strict_keeps_row(self, make_doc):
        spec = QuerySpec(views=[ViewSpec(name="v", filters="!missing")])

        result = run(spec, [make_doc("A.md")], strict=False)

        assert paths(result) == ["A.md"]
        assert result.diagnostics.errors == []

    def test_file_filters(self, make_doc):
        documents = [
            make_doc("Projects/A.md", tags=["project/active"]),
            make_doc("Notes/B.md", tags=["idea"]),
        ]
        spec = QuerySpec(views=[ViewSpec(name="v", filters='file.hasTag("project")')])

        assert paths(run(spec, documents)) == ["Projects/A.md"]


# =============================================================================
# Formulas
# =============================================================================


class TestFormulas:
    def test_formulas_in_dependency_order(self, scored):
        spec = QuerySpec(
            formulas={"quad": "formula.double * 2", "double": "score * 2"},
            views=[ViewSpec(name="v", columns=["formula.quad"])],
        )

        result = run(spec, scored)

        assert [row.projected["formula.quad"] for row in result.rows] == [4, 28, 28, 12]
        assert result.rows[0].formula == {"double": 2, "quad": 4}

    def test_filters_see_formulas(self, scored):
        spec = QuerySpec(
            formulas={"double": "score * 2"},
            views=[ViewSpec(name="v", filters="formula.double > 10")],
        )

        assert paths(run(spec, scored)) == ["B.md", "C.md"]

    def test_formula_error_drops_row(self, make_doc):
        spec = QuerySpec(formulas={"bad": "1 / zero"}, views=[ViewSpec(name="v")])

        result = run(spec, [make_doc("A.md", {"zero": 0})])

        assert result.rows == []
        assert result.diagnostics.errors == ["row A.md: Division by zero"]

    def test_this_is_the_current_document(self, make_doc):
        spec = QuerySpec(
            formulas={"me": "this.name"},
            views=[ViewSpec(name="v", columns=["formula.me"])],
        )

        result = run(spec, [make_doc("Notes/A.md")])

        assert result.rows[0].projected == {"formula.me": "A.md"}

    def test_file_lookup_across_documents(self, make_doc):
        documents = [
            make_doc("Notes/A.md", links=["Beta"]),
            make_doc("Notes/Beta.md", {"owner": "kim"}),
        ]
        spec = QuerySpec(
            formulas={"target": 'file("Beta").path'},
            views=[ViewSpec(name="v", columns=["formula.target"])],
        )

        result = run(spec, documents)

        assert result.rows[0].projected["formula.target"] == "Notes/Beta.md"


# =============================================================================
# Sorting and Limits
# =============================================================================


class TestSorting:
    def test_sort_desc_then_name_with_limit(self, scored):
        spec = QuerySpec(
            views=[
                ViewSpec(
                    name="v",
                    sort=[SortSpec("score", SortDirection.DESC), SortSpec("file.name")],
                    limit=2,
                )
            ]
        )

        result = run(spec, scored)

        assert paths(result) == ["B.md", "C.md"]
        assert result.stats.matched_rows == 4
        assert result.stats.documents == 4

    def test_ties_broken_by_path(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="v", sort=[SortSpec("status")])])

        assert paths(run(spec, scored)) == ["A.md", "B.md", "C.md", "D.md"]

    def test_no_sort_orders_by_path(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="v")])

        assert paths(run(spec, scored)) == ["A.md", "B.md", "C.md", "D.md"]

    def test_input_order_does_not_matter(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="v", sort=[SortSpec("score")])])

        forward = paths(run(spec, scored))
        backward = paths(run(spec, list(reversed(scored))))

        assert forward == backward == ["A.md", "D.md", "B.md", "C.md"]

    def test_sort_by_expression(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="v", sort=[SortSpec("score * -1")])])

        assert paths(run(spec, scored))[0] in ("B.md", "C.md")

    def test_limit_zero(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="v", limit=0)])

        result = run(spec, scored)

        assert result.rows == []
        assert result.stats.matched_rows == 4


# =============================================================================
# Columns and Projection
# =============================================================================


class TestColumns:
    def test_explicit_columns(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="v", columns=["file.name", "score"], limit=1)])

        result = run(spec, scored)

        assert result.columns == ["file.name", "score"]
        assert result.rows[0].projected == {"file.name": "A.md", "score": 1}

    def test_spec_properties_are_the_default(self, scored):
        spec = QuerySpec(properties=["file.path"], views=[ViewSpec(name="v")])

        assert run(spec, scored).columns == ["file.path"]

    def test_inferred_columns(self, make_doc):
        documents = [
            make_doc("B.md", {"owner": "kim"}),
            make_doc("A.md", {"status": "x", "score": 1}),
        ]
        spec = QuerySpec(formulas={"z": "1", "y": "2"}, views=[ViewSpec(name="v")])

        result = run(spec, documents, strict=False)

        assert result.columns == [
            "file.name", "status", "score", "owner", "formula.y", "formula.z",
        ]

    def test_inferred_columns_without_properties(self, make_doc):
        result = run(QuerySpec(views=[ViewSpec(name="v")]), [make_doc("A.md")])

        assert result.columns == ["file.name", "file.path"]

    def test_literal_key_wins_over_expression(self, make_doc):
        documents = [make_doc("A.md", {"file.name": "literal"})]
        spec = QuerySpec(views=[ViewSpec(name="v", columns=["file.name"])])

        assert run(spec, documents).rows[0].projected == {"file.name": "literal"}

    def test_quoted_property_with_spaces(self, make_doc):
        documents = [make_doc("A.md", {"due date": "soon"})]
        spec = QuerySpec(views=[ViewSpec(name="v", columns=["due date", "note.missing"])])

        row = run(spec, documents).rows[0]

        assert row.projected == {"due date": "soon", "note.missing": None}

    def test_missing_property_is_null_without_warning(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="v", columns=["owner", "not an expression"])])

        result = run(spec, scored)

        assert all(row.projected == {"owner": None, "not an expression": None} for row in result.rows)
        assert result.diagnostics.warnings == []

    def test_column_error_becomes_warning(self, make_doc):
        spec = QuerySpec(views=[ViewSpec(name="v", columns=["score.nope()"])])

        result = run(spec, [make_doc("A.md", {"score": 3})])

        assert result.rows[0].projected == {"score.nope()": None}
        assert len(result.diagnostics.warnings) == 1
        assert result.diagnostics.warnings[0].startswith("row A.md: score.nope(): Unknown method")
        assert result.diagnostics.errors == []


# =============================================================================
# Grouping
# =============================================================================


class TestGrouping:
    def test_no_group_by(self, scored):
        assert run(QuerySpec(views=[ViewSpec(name="v")]), scored).groups is None

    def test_groups_in_key_order(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="v", group_by=GroupSpec("status"))])

        groups = run(spec, scored).groups

        assert [group.key for group in groups] == ["active", "done"]
        assert [row.path for row in groups[0].rows] == ["A.md", "B.md", "C.md"]

    def test_groups_descending(self, scored):
        spec = QuerySpec(
            views=[ViewSpec(name="v", group_by=GroupSpec("status", SortDirection.DESC))]
        )

        assert [group.key for group in run(spec, scored).groups] == ["done", "active"]

    def test_missing_key_groups_under_null(self, scored, make_doc):
        documents = scored + [make_doc("E.md", {"score": 0})]
        spec = QuerySpec(views=[ViewSpec(name="v", group_by=GroupSpec("status"))])

        groups = run(spec, documents).groups

        assert groups[0].key is None
        assert [row.path for row in groups[0].rows] == ["E.md"]

    def test_groups_follow_sort_order(self, scored):
        spec = QuerySpec(
            views=[
                ViewSpec(
                    name="v",
                    sort=[SortSpec("score", SortDirection.DESC)],
                    group_by=GroupSpec("status"),
                )
            ]
        )

        groups = run(spec, scored).groups

        assert [row.path for row in groups[0].rows] == ["B.md", "C.md", "A.md"]

    def test_structurally_equal_keys_share_a_group(self, make_doc):
        documents = [
            make_doc("A.md", {"meta": {"a": 1, "b": 2}}),
            make_doc("B.md", {"meta": {"b": 2, "a": 1}}),
        ]
        spec = QuerySpec(views=[ViewSpec(name="v", group_by=GroupSpec("meta"))])

        groups = run(spec, documents).groups

        assert len(groups) == 1
        assert len(groups[0].rows) == 2

    def test_keys_differing_only_in_string_content_stay_apart(self, make_doc):
        documents = [
            make_doc("A.md", {"k": ["a", "b"]}),
            make_doc("B.md", {"k": ["a,string:b"]}),
            make_doc("C.md", {"k": ["a", "b"]}),
        ]
        spec = QuerySpec(
            views=[ViewSpec(name="v", columns=["k"], group_by=GroupSpec("k"), summaries={"k": "unique"})]
        )

        result = run(spec, documents)

        assert [[row.path for row in group.rows] for group in result.groups] == [
            ["A.md", "C.md"],
            ["B.md"],
        ]
        assert result.summaries == {"k": 2}


# =============================================================================
# Summaries
# =============================================================================


class TestSummaries:
    def test_no_summaries(self, scored):
        assert run(QuerySpec(views=[ViewSpec(name="v")]), scored).summaries is None

    def test_builtin_over_limited_rows(self, scored):
        spec = QuerySpec(
            views=[
                ViewSpec(
                    name="v",
                    columns=["score"],
                    sort=[SortSpec("score", SortDirection.DESC)],
                    limit=2,
                    summaries={"score": "Sum"},
                )
            ]
        )

        assert run(spec, scored).summaries == {"score": 14}

    def test_named_summary_formula(self, scored):
        spec = QuerySpec(
            summaries={"spread": "max(values) - min(values)"},
            views=[ViewSpec(name="v", columns=["score"], summaries={"score": "spread"})],
        )

        assert run(spec, scored).summaries == {"score": 6}

    def test_inline_summary_expression(self, scored):
        spec = QuerySpec(
            views=[ViewSpec(name="v", columns=["score"], summaries={"score": "values.length"})]
        )

        assert run(spec, scored).summaries == {"score": 4}

    def test_unknown_summary_is_null(self, scored):
        spec = QuerySpec(
            views=[ViewSpec(name="v", columns=["score"], summaries={"score": "bogus"})]
        )

        result = run(spec, scored)

        assert result.summaries == {"score": None}
        assert result.diagnostics.warnings == []

    def test_failing_summary_warns(self, scored):
        spec = QuerySpec(
            views=[ViewSpec(name="v", columns=["score"], summaries={"score": "values.nope()"})]
        )

        result = run(spec, scored)

        assert result.summaries == {"score": None}
        assert result.diagnostics.warnings[0].startswith("summary score: Unknown method")

    def test_column_outside_projection(self, scored):
        spec = QuerySpec(
            views=[ViewSpec(name="v", columns=["file.name"], summaries={"score": "max"})]
        )

        assert run(spec, scored).summaries == {"score": 7}


# =============================================================================
# Views, Stats and Reuse
# =============================================================================


class TestViews:
    def test_first_view_is_the_default(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="first", limit=1), ViewSpec(name="second")])

        result = run(spec, scored)

        assert result.view == "first"
        assert len(result.rows) == 1

    def test_named_view(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="first", limit=1), ViewSpec(name="second")])

        assert len(run(spec, scored, "second").rows) == 4

    def test_unknown_view(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="v")])

        with pytest.raises(ViewNotFoundError, match="View not found: 'nope'"):
            run(spec, scored, "nope")

    def test_stats(self, scored):
        result = run(QuerySpec(views=[ViewSpec(name="v")]), scored, scanned_files=10)

        assert result.stats.scanned_files == 10
        assert result.stats.elapsed_ms >= 0

    def test_compiled_query_is_reusable(self, scored):
        compiled = compile_query(
            QuerySpec(formulas={"double": "score * 2"}, views=[ViewSpec(name="v")])
        )

        first = QueryExecutor(compiled, scored).run()
        second = QueryExecutor(compiled, scored[:1]).run()
        third = QueryExecutor(compiled, scored).run()

        assert paths(second) == ["D.md"]
        assert [r.projected for r in first.rows] == [r.projected for r in third.rows]

    def test_editing_the_spec_after_compile_has_no_effect(self, scored):
        spec = QuerySpec(views=[ViewSpec(name="v", filters="score > 2")])
        compiled = compile_query(spec)

        spec.views[0].limit = 1
        spec.views[0].sort.append(SortSpec("score", SortDirection.DESC))
        spec.views.append(ViewSpec(name="late"))

        result = execute_query(compiled, scored)

        assert paths(result) == ["B.md", "C.md", "D.md"]
        assert compiled.view_names == ["v"]
        with pytest.raises(ViewNotFoundError):
            execute_query(compiled, scored, "late")


class TestIndexFiles:
    def test_paths_then_names(self, make_doc):
        documents = [
            make_doc("Projects/Alpha.md"),
            make_doc("Archive/Alpha.md"),
        ]

        files = index_files(documents)

        assert files["Projects/Alpha.md"].path == "Projects/Alpha.md"
        assert files["Alpha.md"].path == "Archive/Alpha.md"
        assert files["Alpha"].path == "Archive/Alpha.md"
