from pipelines.graphs.routing import next_row_step


def test_unresolved_row_starts_with_context() -> None:
    assert next_row_step({"completed_stages": [0, 1]}) == "resolve_context"


def test_routes_to_first_incomplete_stage() -> None:
    state = {"resolved_question": "Q?", "completed_stages": []}
    assert next_row_step(state) == "research"
    assert next_row_step({**state, "completed_stages": [0]}) == "draft"
    assert next_row_step({**state, "completed_stages": [0, 1]}) == "tailor"
    assert next_row_step({**state, "completed_stages": [1]}) == "research"


def test_all_stages_complete_ends_row() -> None:
    assert next_row_step({"resolved_question": "Q?", "completed_stages": [0, 1, 2]}) == "end"
