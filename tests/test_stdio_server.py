import json

import pytest
from mcp.shared.memory import create_connected_server_and_client_session

from scriptability_mcp.main import create_server


def _text(result):
    [part] = result.content
    return part.text


@pytest.fixture
def server(runtime):
    return create_server(runtime)


@pytest.mark.asyncio
async def test_lists_tools_over_session(server):
    async with create_connected_server_and_client_session(server) as session:
        listed = await session.list_tools()

    names = {tool.name for tool in listed.tools}
    assert {"medcast_generate_podcast", "medcast_job_status"} <= names


@pytest.mark.asyncio
async def test_tool_errors_keep_error_flag(server):
    async with create_connected_server_and_client_session(server) as session:
        unknown_job = await session.call_tool("medcast_job_status", {"jobId": "nope"})
        unknown_tool = await session.call_tool("bogus", {})

    assert unknown_job.isError
    assert _text(unknown_job) == "Error: Unknown job: nope"
    assert unknown_tool.isError
    assert _text(unknown_tool) == "Error: Unknown tool: bogus"


@pytest.mark.asyncio
async def test_arguments_are_checked_by_the_tools(server, runtime):
    async with create_connected_server_and_client_session(server) as session:
        missing_id = await session.call_tool("medcast_job_status", {})
        bad_wait = await session.call_tool("medcast_generate_podcast", {"text": "hello", "waitMs": "soon"})

    assert missing_id.isError
    assert _text(missing_id) == "Error: Missing 'jobId'."
    assert bad_wait.isError
    assert _text(bad_wait) == "Error: 'waitMs' must be a number."
    assert len(runtime.registry) == 0


@pytest.mark.asyncio
async def test_generate_podcast_over_session(server):
    async with create_connected_server_and_client_session(server) as session:
        result = await session.call_tool("medcast_generate_podcast", {"text": "hello", "waitMs": 5000})

    assert not result.isError
    descriptor = json.loads(_text(result))
    assert descriptor["status"] == "succeeded"
    assert descriptor["path"].endswith(".wav")
