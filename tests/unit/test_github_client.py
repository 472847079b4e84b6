"""
Unit tests for the GitHub REST client.
"""

import base64
import json

import httpx
import pytest

from prbuilder.services.github_client import (
    GitHubApiError,
    GitHubClient,
    MergeConflictError,
    NotFoundError,
)


class Recorder:
    """MockTransport handler answering from a route table and recording requests."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"message": "Not Found"})
        route = self.routes[key]
        if callable(route):
            return route(request)
        status, body = route
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def bodies(self, method):
        return [json.loads(r.content) for r in self.requests if r.method == method]


def make_client(routes):
    recorder = Recorder(routes)
    client = GitHubClient("https://api.github.com", token="secret", transport=httpx.MockTransport(recorder))
    return client, recorder


@pytest.mark.asyncio
async def test_get_branch_sha():
    client, recorder = make_client({
        ("GET", "/repos/acme/app/git/ref/heads/master"): (200, {"object": {"sha": "a" * 40}}),
    })

    assert await client.get_branch_sha("acme", "app", "master") == "a" * 40
    assert recorder.requests[0].headers["Authorization"] == "Bearer secret"
    await client.close()


@pytest.mark.asyncio
async def test_missing_resource_raises_not_found():
    client, _ = make_client({})

    with pytest.raises(NotFoundError) as exc_info:
        await client.get_pull_request("acme", "app", 12)

    assert exc_info.value.status_code == 404
    await client.close()


@pytest.mark.asyncio
async def test_server_error_raises_api_error():
    client, _ = make_client({
        ("POST", "/repos/acme/app/git/trees"): (500, {"message": "boom"}),
    })

    with pytest.raises(GitHubApiError) as exc_info:
        await client.create_tree("acme", "app", [])

    assert not isinstance(exc_info.value, NotFoundError)
    assert exc_info.value.status_code == 500
    await client.close()


@pytest.mark.asyncio
async def test_transport_error_raises_api_error():
    def fail(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = GitHubClient("https://api.github.com", transport=httpx.MockTransport(fail))

    with pytest.raises(GitHubApiError):
        await client.get_commit("acme", "app", "a" * 40)
    await client.close()


@pytest.mark.asyncio
async def test_move_branch_creates_missing_branch():
    client, recorder = make_client({
        ("POST", "/repos/acme/widget/git/refs"): (201, {"ref": "refs/heads/lprb-master-12-1"}),
    })

    await client.move_branch("acme", "widget", "lprb-master-12-1", "b" * 40)

    assert recorder.bodies("POST") == [{"ref": "refs/heads/lprb-master-12-1", "sha": "b" * 40}]
    await client.close()


@pytest.mark.asyncio
async def test_move_branch_force_updates_existing_branch():
    client, recorder = make_client({
        ("GET", "/repos/acme/widget/git/ref/heads/lprb-master-12-1"): (200, {"object": {"sha": "a" * 40}}),
        ("PATCH", "/repos/acme/widget/git/refs/heads/lprb-master-12-1"): (200, {"object": {"sha": "b" * 40}}),
    })

    await client.move_branch("acme", "widget", "lprb-master-12-1", "b" * 40)

    assert recorder.bodies("PATCH") == [{"sha": "b" * 40, "force": True}]
    assert recorder.bodies("POST") == []
    await client.close()


@pytest.mark.asyncio
async def test_merge_returns_merge_commit():
    client, recorder = make_client({
        ("POST", "/repos/acme/widget/merges"): (201, {"sha": "m" * 40}),
    })

    assert await client.merge("acme", "widget", "lprb-master-12-1", "h" * 40, "PR #12: Fix") == "m" * 40
    assert recorder.bodies("POST") == [
        {"base": "lprb-master-12-1", "head": "h" * 40, "commit_message": "PR #12: Fix"}
    ]
    await client.close()


@pytest.mark.asyncio
async def test_merge_of_contained_head_returns_branch_tip():
    client, _ = make_client({
        ("POST", "/repos/acme/widget/merges"): (204, None),
        ("GET", "/repos/acme/widget/git/ref/heads/lprb-master-12-1"): (200, {"object": {"sha": "t" * 40}}),
    })

    assert await client.merge("acme", "widget", "lprb-master-12-1", "h" * 40, "msg") == "t" * 40
    await client.close()


@pytest.mark.asyncio
async def test_merge_conflict():
    client, _ = make_client({
        ("POST", "/repos/acme/widget/merges"): (409, {"message": "Merge conflict"}),
    })

    with pytest.raises(MergeConflictError):
        await client.merge("acme", "widget", "lprb-master-12-1", "h" * 40, "msg")
    await client.close()


@pytest.mark.asyncio
async def test_create_status_omits_empty_fields():
    client, recorder = make_client({
        ("POST", "/repos/acme/widget/statuses/" + "a" * 40): (201, {"id": 1}),
    })

    await client.create_status("acme", "widget", "a" * 40, state="pending", context="Jenkins: widget-pr")

    assert recorder.bodies("POST") == [{"state": "pending", "context": "Jenkins: widget-pr"}]
    await client.close()


@pytest.mark.asyncio
async def test_read_file_decodes_base64():
    text = '{"repoUrl": "git@git:acme/app.git"}'
    client, recorder = make_client({
        ("GET", "/repos/Build/Configuration/contents/widget.json"): (
            200, {"encoding": "base64", "content": base64.b64encode(text.encode()).decode()}
        ),
    })

    assert await client.read_file("Build", "Configuration", "widget.json", ref="master") == text
    assert recorder.requests[0].url.params["ref"] == "master"
    await client.close()


@pytest.mark.asyncio
async def test_list_pull_requests_follows_pages():
    def pulls(request):
        page = int(request.url.params["page"])
        batch = {1: [{"number": 1}, {"number": 2}], 2: [{"number": 3}]}[page]
        return httpx.Response(200, json=batch)

    client, recorder = make_client({("GET", "/repos/acme/widget/pulls"): pulls})

    result = await client.list_pull_requests("acme", "widget", per_page=2)

    assert [p["number"] for p in result] == [1, 2, 3]
    assert len(recorder.requests) == 2
    assert recorder.requests[0].url.params["state"] == "open"
    await client.close()
