"""
Unit tests for the Jenkins client.
"""

from urllib.parse import parse_qs

import httpx
import pytest

from prbuilder.services.jenkins_client import JenkinsClient, JenkinsError


JOB_URL = "https://ci.example.com/job/widget-pr/buildWithParameters"


@pytest.mark.asyncio
async def test_trigger_passes_sha_parameter():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201)

    client = JenkinsClient(transport=httpx.MockTransport(handler))
    await client.trigger(JOB_URL, "c" * 40)

    assert requests[0].method == "GET"
    assert requests[0].url.path == "/job/widget-pr/buildWithParameters"
    assert requests[0].url.params["sha1"] == "c" * 40
    await client.close()


@pytest.mark.asyncio
async def test_submit_description_posts_form():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(302, headers={"Location": "https://ci.example.com/job/widget-pr/7/"})

    client = JenkinsClient(transport=httpx.MockTransport(handler))
    await client.submit_description("https://ci.example.com/job/widget-pr/7/", "PR #12: Fix widget")

    assert requests[0].method == "POST"
    assert str(requests[0].url) == "https://ci.example.com/job/widget-pr/7/submitDescription"
    assert parse_qs(requests[0].content.decode()) == {
        "description": ["PR #12: Fix widget"],
        "Submit": ["Submit"],
    }
    await client.close()


@pytest.mark.asyncio
async def test_error_response_raises():
    client = JenkinsClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))

    with pytest.raises(JenkinsError):
        await client.trigger(JOB_URL, "c" * 40)
    await client.close()


@pytest.mark.asyncio
async def test_connection_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = JenkinsClient(transport=httpx.MockTransport(handler))

    with pytest.raises(JenkinsError):
        await client.trigger(JOB_URL, "c" * 40)
    await client.close()
