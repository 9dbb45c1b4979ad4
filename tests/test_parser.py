"""Tests for the JSONL session parser."""

import io
import json
from datetime import datetime, timezone

import pytest

from agent_transcript import parser
from agent_transcript.errors import LineTooLongError, NoMessagesError
from agent_transcript.models import BlockType, Role, TextFormat
from agent_transcript.parser import (
    RawEvent,
    ZERO_TIME,
    derive_title,
    extract_tool_result_content,
    group_and_map_messages,
    map_content,
    map_content_block,
    parse_session_file,
    parse_session_stream,
    parse_timestamp,
    scan_entries,
)
from tests.fixtures.session_fixtures import (
    assistant_entry,
    simple_session,
    text,
    thinking,
    tool_result_entry,
    tool_use,
    usage,
    user_entry,
    write_jsonl,
)


def to_stream(entries: list) -> io.BytesIO:
    lines = [e if isinstance(e, str) else json.dumps(e) for e in entries]
    return io.BytesIO(("\n".join(lines) + "\n").encode("utf-8"))


def events_for(entries: list) -> list[RawEvent]:
    return scan_entries(to_stream(entries))


class TestScanEntries:
    def test_keeps_user_and_assistant(self):
        events = events_for(simple_session())
        assert [e.type for e in events] == ["user", "assistant"]

    def test_filters_non_message_types_and_sidechain(self):
        entries = [
            {"type": "file-history-snapshot", "snapshot": {}},
            {"type": "summary", "summary": "Bug fix"},
            user_entry("hello"),
            user_entry("warmup", uuid="u-2", isSidechain=True),
            {"type": "system", "subtype": "turn_duration"},
            assistant_entry("m1", [text("hi")]),
        ]
        events = events_for(entries)
        assert len(events) == 2
        assert all(not e.is_sidechain for e in events)

    def test_sidechain_variant_keeps_sidechain_entries(self):
        entries = [
            user_entry("go", isSidechain=True),
            assistant_entry("m1", [text("ok")], isSidechain=True),
            {"type": "progress", "isSidechain": True},
        ]
        events = scan_entries(to_stream(entries), include_sidechain=True)
        assert len(events) == 2

    def test_skips_malformed_lines(self):
        entries = [
            user_entry("hello"),
            "invalid json line",
            '["not", "an", "object"]',
            '{"type": "user", "message": "not an object"}',
            '{"type": "assistant", "message": {"id": "m1", "content": [',
        ]
        events = events_for(entries)
        assert len(events) == 1

    def test_skips_pathologically_nested_line(self):
        entries = [user_entry("hello"), "[" * 200000]
        events = events_for(entries)
        assert len(events) == 1

    def test_out_of_range_usage_counter_degrades_to_zero(self):
        line = json.dumps(assistant_entry("m1", [text("hi")], usage=usage(3, 4)))
        line = line.replace('"input_tokens": 3', '"input_tokens": 1e400')
        events = events_for([user_entry("hello"), line])
        assert len(events) == 2
        assert events[1].usage.input_tokens == 0
        assert events[1].usage.output_tokens == 4

    def test_skips_blank_lines(self):
        stream = io.BytesIO(b"\n\n" + json.dumps(user_entry("hi")).encode() + b"\n\n")
        assert len(scan_entries(stream)) == 1

    def test_oversized_line_is_fatal(self, monkeypatch):
        monkeypatch.setattr(parser, "MAX_LINE_BYTES", 400)
        entries = [user_entry("hello"), user_entry("x" * 500, uuid="u-2")]
        with pytest.raises(LineTooLongError) as exc_info:
            events_for(entries)
        assert exc_info.value.line_number == 2

    def test_tolerates_megabyte_lines(self):
        big_output = "y" * (1024 * 1024)
        entries = [user_entry("hello"), tool_result_entry("toolu_1", big_output)]
        events = events_for(entries)
        assert len(events) == 2

    def test_flattens_event_fields(self):
        entry = assistant_entry(
            "m1",
            [text("hi")],
            uuid="a-9",
            parent_uuid="u-1",
            usage=usage(3, 4, 5, 6),
            agentId="agent-x",
        )
        event = events_for([entry])[0]
        assert event.uuid == "a-9"
        assert event.parent_uuid == "u-1"
        assert event.session_id == "sess-1"
        assert event.cwd == "/work"
        assert event.git_branch == "main"
        assert event.agent_id == "agent-x"
        assert event.message_id == "m1"
        assert event.model == "claude-opus-4-6"
        assert event.usage.input_tokens == 3
        assert event.usage.cache_creation_tokens == 6


class TestParseTimestamp:
    def test_parses_fractional_seconds(self):
        parsed = parse_timestamp("2026-01-15T10:00:05.123Z")
        assert parsed == datetime(2026, 1, 15, 10, 0, 5, 123000, tzinfo=timezone.utc)

    def test_parses_offset(self):
        parsed = parse_timestamp("2026-01-15T12:00:00+02:00")
        assert parsed.utcoffset().total_seconds() == 7200

    @pytest.mark.parametrize("value", ["", "yesterday", None, 12345])
    def test_unparsable_degrades_to_zero_time(self, value):
        assert parse_timestamp(value) == ZERO_TIME


class TestMapContentBlock:
    def test_text_block_from_user_is_plain(self):
        block = map_content_block(text("hello"), Role.USER)
        assert block.type == BlockType.TEXT
        assert block.text == "hello"
        assert block.format == TextFormat.PLAIN

    def test_text_block_from_assistant_is_markdown(self):
        block = map_content_block(text("**done**"), Role.ASSISTANT)
        assert block.format == TextFormat.MARKDOWN

    def test_thinking_block(self):
        block = map_content_block(thinking("reasoning"), Role.ASSISTANT)
        assert block.type == BlockType.THINKING
        assert block.text == "reasoning"
        assert block.format is None

    def test_tool_use_block(self):
        block = map_content_block(tool_use("toolu_1", "Bash", {"command": "ls"}), Role.ASSISTANT)
        assert block.type == BlockType.TOOL_USE
        assert block.tool_use_id == "toolu_1"
        assert block.name == "Bash"
        assert block.input == {"command": "ls"}

    def test_tool_result_block(self):
        fragment = {"type": "tool_result", "tool_use_id": "toolu_1", "content": "cmd output"}
        block = map_content_block(fragment, Role.USER)
        assert block.type == BlockType.TOOL_RESULT
        assert block.tool_use_id == "toolu_1"
        assert block.content == "cmd output"
        assert block.is_error is False

    def test_tool_result_error_flag(self):
        fragment = {
            "type": "tool_result",
            "tool_use_id": "toolu_1",
            "content": "permission denied",
            "is_error": True,
        }
        assert map_content_block(fragment, Role.USER).is_error is True

    def test_unknown_kind_produces_no_block(self):
        fragment = {"type": "image", "source": {"type": "base64", "data": "..."}}
        assert map_content_block(fragment, Role.USER) is None

    @pytest.mark.parametrize(
        "fragment",
        [
            "bare string",
            {"type": "text", "text": 42},
            {"type": "thinking"},
            {"type": "tool_use", "id": "toolu_1"},
            {"type": "tool_result", "tool_use_id": ["x"]},
        ],
    )
    def test_malformed_fragment_is_dropped(self, fragment):
        assert map_content_block(fragment, Role.ASSISTANT) is None


class TestMapContent:
    def test_string_content_becomes_text_block(self):
        blocks = map_content("hello", Role.USER)
        assert len(blocks) == 1
        assert blocks[0].text == "hello"
        assert blocks[0].format == TextFormat.PLAIN

    def test_skips_bad_fragments_not_whole_message(self):
        blocks = map_content([text("a"), {"type": "text"}, {"type": "image"}, text("b")], Role.USER)
        assert [b.text for b in blocks] == ["a", "b"]

    def test_unexpected_shape_yields_nothing(self):
        assert map_content({"type": "text"}, Role.USER) == []
        assert map_content(None, Role.USER) == []


class TestExtractToolResultContent:
    def test_string(self):
        assert extract_tool_result_content("hello") == "hello"

    def test_none(self):
        assert extract_tool_result_content(None) == ""

    def test_list_of_text_parts(self):
        content = [text("line1"), text("line2")]
        assert extract_tool_result_content(content) == "line1\nline2"

    def test_non_text_parts_are_ignored(self):
        content = [text("line1"), {"type": "image", "source": {}}]
        assert extract_tool_result_content(content) == "line1"

    def test_other_shapes_fall_back_to_str(self):
        assert extract_tool_result_content(42) == "42"


class TestGroupAndMapMessages:
    def test_simple_pair(self):
        messages = group_and_map_messages(events_for(simple_session()))
        assert [m.role for m in messages] == [Role.USER, Role.ASSISTANT]
        assert [len(m.content) for m in messages] == [1, 1]

    def test_fragments_with_same_id_merge(self):
        entries = [
            user_entry("go"),
            assistant_entry("m1", [thinking("plan")], uuid="a-1"),
            assistant_entry("m1", [text("working")], uuid="a-2"),
            assistant_entry("m1", [tool_use("toolu_1", "Bash", {"command": "ls"})], uuid="a-3"),
        ]
        messages = group_and_map_messages(events_for(entries))
        assert len(messages) == 2
        assistant = messages[1]
        assert [b.type for b in assistant.content] == [
            BlockType.THINKING,
            BlockType.TEXT,
            BlockType.TOOL_USE,
        ]
        assert assistant.uuid == "a-1"

    def test_tool_results_do_not_close_assistant_group(self):
        entries = [
            user_entry("go"),
            assistant_entry("m1", [tool_use("toolu_1", "Bash")], uuid="a-1"),
            tool_result_entry("toolu_1", "out1", uuid="r-1"),
            assistant_entry("m1", [tool_use("toolu_2", "Bash")], uuid="a-2"),
            tool_result_entry("toolu_2", "out2", uuid="r-2"),
            assistant_entry("m1", [text("all done")], uuid="a-3"),
        ]
        messages = group_and_map_messages(events_for(entries))
        assert [m.role for m in messages] == [Role.USER, Role.USER, Role.USER, Role.ASSISTANT]
        assert [len(m.content) for m in messages] == [1, 1, 1, 3]
        assert all(b.type != BlockType.TOOL_RESULT for b in messages[3].content)

    def test_many_fragments_interleaved_with_tool_results(self):
        n_fragments, m_results = 5, 3
        entries = [user_entry("go")]
        for i in range(n_fragments):
            entries.append(assistant_entry("m1", [text(f"part {i}")], uuid=f"a-{i}"))
            if i < m_results:
                entries.append(tool_result_entry(f"toolu_{i}", "ok", uuid=f"r-{i}"))

        messages = group_and_map_messages(events_for(entries))
        assistants = [m for m in messages if m.role == Role.ASSISTANT]
        users = [m for m in messages if m.role == Role.USER]
        assert len(assistants) == 1
        assert [b.text for b in assistants[0].content] == [f"part {i}" for i in range(n_fragments)]
        assert len(users) == 1 + m_results

    def test_human_turn_flushes_open_group(self):
        entries = [
            assistant_entry("m1", [text("hello")], uuid="a-1"),
            user_entry("first", uuid="u-1"),
            assistant_entry("m2", [text("reply")], uuid="a-2"),
            user_entry("second", uuid="u-2"),
        ]
        messages = group_and_map_messages(events_for(entries))
        assert [m.role for m in messages] == [
            Role.ASSISTANT,
            Role.USER,
            Role.ASSISTANT,
            Role.USER,
        ]

    def test_new_payload_id_starts_new_message(self):
        entries = [
            user_entry("go"),
            assistant_entry("m1", [text("one")], uuid="a-1"),
            assistant_entry("m2", [text("two")], uuid="a-2"),
        ]
        messages = group_and_map_messages(events_for(entries))
        assert len(messages) == 3

    def test_later_usage_replaces_earlier(self):
        entries = [
            assistant_entry("m1", [text("a")], uuid="a-1", usage=usage(10, 1)),
            assistant_entry("m1", [text("b")], uuid="a-2"),
            assistant_entry("m1", [text("c")], uuid="a-3", usage=usage(10, 7)),
        ]
        messages = group_and_map_messages(events_for(entries))
        assert len(messages) == 1
        assert messages[0].usage.input_tokens == 10
        assert messages[0].usage.output_tokens == 7

    def test_assistant_message_metadata(self):
        messages = group_and_map_messages(events_for(simple_session()))
        assistant = messages[1]
        assert assistant.model == "claude-opus-4-6"
        assert assistant.parent_uuid == "u-1"
        assert assistant.timestamp == datetime(2026, 1, 15, 10, 0, 5, tzinfo=timezone.utc)
        assert messages[0].model is None

    def test_empty_input(self):
        assert group_and_map_messages([]) == []


class TestDeriveTitle:
    def title_of(self, entries):
        return derive_title(group_and_map_messages(events_for(entries)))

    def test_first_user_text(self):
        assert self.title_of(simple_session()) == "fix the bug"

    def test_skips_ide_metadata(self):
        entries = [
            user_entry(
                [
                    text("<ide_opened_file>The user opened src/app.py</ide_opened_file>"),
                    text("real title here"),
                ]
            ),
        ]
        assert self.title_of(entries) == "real title here"

    def test_skips_tool_result_only_messages(self):
        entries = [
            tool_result_entry("toolu_1", "output"),
            user_entry("the actual ask", uuid="u-2"),
        ]
        assert self.title_of(entries) == "the actual ask"

    def test_slash_command(self):
        entries = [
            user_entry(
                "<command-name>/review</command-name><command-args>PR 12</command-args>"
            )
        ]
        assert self.title_of(entries) == "/review PR 12"

    def test_first_line_truncated(self):
        long_line = "word " * 40
        title = self.title_of([user_entry(long_line + "\nsecond line")])
        assert len(title) <= parser.MAX_TITLE_LENGTH
        assert title.endswith("...")

    def test_no_user_text(self):
        assert self.title_of([assistant_entry("m1", [text("hi")])]) is None


class TestParseSessionFile:
    def test_simple_session(self, tmp_path):
        path = write_jsonl(tmp_path / "abc.jsonl", simple_session())
        transcript = parse_session_file(path, resolve_author=False)

        assert transcript.session_id == "sess-1"
        assert transcript.agent == "claude"
        assert transcript.model == "claude-opus-4-6"
        assert transcript.dir == "/work"
        assert transcript.git_branch == "main"
        assert transcript.title == "fix the bug"
        assert len(transcript.messages) == 2
        assert transcript.created_at == datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert transcript.updated_at == datetime(2026, 1, 15, 10, 0, 5, tzinfo=timezone.utc)
        assert transcript.parent_session_id is None
        assert transcript.sub_agents == []

    def test_usage_totals(self, tmp_path):
        path = write_jsonl(tmp_path / "abc.jsonl", simple_session())
        transcript = parse_session_file(path, resolve_author=False)
        assert transcript.usage.input_tokens == 100
        assert transcript.usage.output_tokens == 50
        assert transcript.usage.cache_read_tokens == 5
        assert transcript.usage.cache_creation_tokens == 10

    def test_usage_aggregates_across_messages(self, tmp_path):
        entries = [
            user_entry("one", uuid="u-1"),
            assistant_entry("m1", [text("a")], uuid="a-1", usage=usage(50, 20)),
            user_entry("two", uuid="u-2"),
            assistant_entry("m2", [text("b")], uuid="a-2", usage=usage(60, 25)),
        ]
        transcript = parse_session_file(write_jsonl(tmp_path / "s.jsonl", entries), resolve_author=False)
        assert transcript.usage.input_tokens == 110
        assert transcript.usage.output_tokens == 45

    def test_no_usage_reported(self, tmp_path):
        entries = [user_entry("hi"), assistant_entry("m1", [text("yo")])]
        transcript = parse_session_file(write_jsonl(tmp_path / "s.jsonl", entries), resolve_author=False)
        assert transcript.usage is None

    def test_streamed_fragments_make_one_message(self, tmp_path):
        entries = [
            assistant_entry("m1", [thinking("hmm")], uuid="a-1"),
            assistant_entry("m1", [text("answer")], uuid="a-2"),
            assistant_entry("m1", [tool_use("toolu_1", "Read", {"file_path": "a.py"})], uuid="a-3"),
        ]
        transcript = parse_session_file(write_jsonl(tmp_path / "s.jsonl", entries), resolve_author=False)
        assert len(transcript.messages) == 1
        assert [b.type for b in transcript.messages[0].content] == [
            BlockType.THINKING,
            BlockType.TEXT,
            BlockType.TOOL_USE,
        ]

    def test_session_id_falls_back_to_file_stem(self, tmp_path):
        entries = [user_entry("hi", session_id=""), assistant_entry("m1", [text("yo")], session_id="")]
        transcript = parse_session_file(write_jsonl(tmp_path / "stem-id.jsonl", entries), resolve_author=False)
        assert transcript.session_id == "stem-id"

    def test_synthetic_model_ignored(self, tmp_path):
        entries = [
            user_entry("hi"),
            assistant_entry("m0", [text("No response requested.")], uuid="a-0", model="<synthetic>"),
            assistant_entry("m1", [text("yo")], uuid="a-1"),
        ]
        transcript = parse_session_file(write_jsonl(tmp_path / "s.jsonl", entries), resolve_author=False)
        assert transcript.model == "claude-opus-4-6"

    def test_diff_stats(self, tmp_path):
        entries = [
            user_entry("write it"),
            assistant_entry(
                "m1",
                [
                    tool_use("toolu_1", "Write", {"file_path": "/work/a.py", "content": "a\nb\nc\n"}),
                    tool_use(
                        "toolu_2",
                        "Edit",
                        {"file_path": "/work/b.py", "old_string": "x", "new_string": "y\nz"},
                    ),
                ],
            ),
        ]
        transcript = parse_session_file(write_jsonl(tmp_path / "s.jsonl", entries), resolve_author=False)
        assert transcript.diff_stats.added == 5
        assert transcript.diff_stats.removed == 1
        assert transcript.diff_stats.changed == 2

    def test_only_non_conversational_entries(self, tmp_path):
        entries = [{"type": "summary", "summary": "x"}, "garbage"]
        with pytest.raises(NoMessagesError):
            parse_session_file(write_jsonl(tmp_path / "s.jsonl", entries), resolve_author=False)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.jsonl"
        path.write_text("")
        with pytest.raises(NoMessagesError):
            parse_session_file(path, resolve_author=False)

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            parse_session_file(tmp_path / "missing.jsonl", resolve_author=False)

    def test_unparsable_timestamps_degrade(self):
        entries = [user_entry("hi", timestamp="garbage"), assistant_entry("m1", [text("yo")], timestamp="")]
        transcript = parse_session_stream(to_stream(entries), "fallback", resolve_author=False)
        assert transcript.created_at == ZERO_TIME
        assert transcript.updated_at is None
        assert transcript.messages[0].timestamp is None

    def test_author_lookup_without_directory(self):
        entries = [user_entry("hi", cwd="/nonexistent/dir/for/tests")]
        transcript = parse_session_stream(to_stream(entries), "fallback")
        assert transcript.author is None
