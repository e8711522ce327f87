from bridgegate.adapters.messages_compat.mapper import map_finish_reason, to_canonical, to_source
from bridgegate.core.models import CanonicalResponse, SourceRequest


def _request(**overrides) -> SourceRequest:
    payload = {"model": "glm-4.6", "messages": [{"role": "user", "content": "hi"}]}
    payload.update(overrides)
    return SourceRequest.model_validate(payload)


def test_to_canonical_prepends_single_system_message():
    canonical = to_canonical(_request(system="S"))
    assert [m.model_dump() for m in canonical.messages] == [
        {"role": "system", "content": "S"},
        {"role": "user", "content": "hi"},
    ]


def test_to_canonical_without_system_adds_nothing():
    canonical = to_canonical(_request())
    assert [m.role for m in canonical.messages] == ["user"]


def test_to_canonical_flattens_block_system_and_skips_empty_result():
    canonical = to_canonical(_request(system=[{"type": "text", "text": "be brief"}, {"type": "text", "text": "be kind"}]))
    assert canonical.messages[0].content == "be brief\nbe kind"

    canonical = to_canonical(_request(system=[{"type": "image"}]))
    assert [m.role for m in canonical.messages] == ["user"]

    canonical = to_canonical(_request(system=""))
    assert [m.role for m in canonical.messages] == ["user"]


def test_to_canonical_preserves_order_and_passes_roles_through():
    req = _request(
        messages=[
            {"role": "user", "content": [{"type": "text", "text": "q1"}]},
            {"role": "assistant", "content": "a1"},
            {"role": "developer", "content": "note"},
        ]
    )
    canonical = to_canonical(req)
    assert [(m.role, m.content) for m in canonical.messages] == [
        ("user", "q1"),
        ("assistant", "a1"),
        ("developer", "note"),
    ]


def test_to_canonical_copies_sampling_fields_and_omits_unset():
    wire = to_canonical(_request(max_tokens=256, temperature=0.0, top_p=0.9)).to_wire()
    assert wire["model"] == "glm-4.6"
    assert wire["max_tokens"] == 256
    assert wire["temperature"] == 0.0
    assert wire["top_p"] == 0.9

    wire = to_canonical(_request()).to_wire()
    assert "max_tokens" not in wire
    assert "temperature" not in wire
    assert "top_p" not in wire
    assert wire["messages"] == [{"role": "user", "content": "hi"}]


def test_to_source_maps_stop_to_end_turn_and_usage():
    resp = CanonicalResponse.model_validate(
        {
            "id": "abc",
            "model": "m",
            "choices": [{"message": {"content": "hello"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 3, "completion_tokens": 1},
        }
    )
    body = to_source(resp).model_dump(mode="json")
    assert body == {
        "id": "msg_abc",
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": "hello"}],
        "model": "m",
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "usage": {
            "input_tokens": 3,
            "output_tokens": 1,
            "cache_creation_input_tokens": 0,
            "cache_read_input_tokens": 0,
        },
    }


def test_finish_reasons_other_than_stop_collapse_to_max_tokens():
    assert map_finish_reason("stop") == "end_turn"
    for reason in ("length", "content_filter", "tool_calls", "", None):
        assert map_finish_reason(reason) == "max_tokens"


def test_to_source_uses_only_first_choice():
    resp = CanonicalResponse.model_validate(
        {
            "id": "x",
            "choices": [
                {"message": {"content": "first"}, "finish_reason": "length"},
                {"message": {"content": "second"}, "finish_reason": "stop"},
            ],
        }
    )
    out = to_source(resp)
    assert [c.text for c in out.content] == ["first"]
    assert out.stop_reason == "max_tokens"


def test_to_source_with_no_choices_leaves_content_empty():
    out = to_source(CanonicalResponse.model_validate({"id": "empty", "model": "m"}))
    assert out.id == "msg_empty"
    assert out.content == []
    assert out.stop_reason is None
    assert out.usage.input_tokens == 0
    assert out.usage.output_tokens == 0


def test_to_source_null_message_content_becomes_empty_text():
    resp = CanonicalResponse.model_validate(
        {"id": "t", "choices": [{"message": {"content": None}, "finish_reason": "tool_calls"}]}
    )
    out = to_source(resp)
    assert out.content[0].text == ""
    assert out.stop_reason == "max_tokens"
