from inline_snapshot import snapshot

from github_analyst.tools.results import AuditEntry, ToolInvocation, ToolResult


def tool_result(payload: object) -> ToolResult:
    return ToolResult(invocation=ToolInvocation(call_id="call-1", tool_name="getContributors", arguments={"owner": "acme"}), payload=payload)


def test_as_struct():
    assert tool_result({"login": "alice"}).as_struct() == {"login": "alice"}
    assert tool_result([{"login": "alice"}]).as_struct() == {"items": [{"login": "alice"}]}
    assert tool_result("hello").as_struct() == {"value": "hello"}
    assert tool_result(None).as_struct() == {"value": None}


def test_is_error():
    assert tool_result({"error": "Tool error: boom"}).is_error
    assert not tool_result([{"error": "not an error object"}]).is_error
    assert not tool_result({"login": "alice"}).is_error


def test_audit_entry():
    assert AuditEntry.from_tool_result(tool_result([{"login": "alice"}])).model_dump() == snapshot(
        {"name": "getContributors", "args": {"owner": "acme"}, "result": "success"}
    )
    assert AuditEntry.from_tool_result(tool_result({"error": "Tool error: boom"})).model_dump() == snapshot(
        {"name": "getContributors", "args": {"owner": "acme"}, "result": {"error": "Tool error: boom"}}
    )


def test_fallback_call_id():
    assert ToolInvocation.fallback_call_id(tool_name="getLanguages", index=2) == "getLanguages-2"
