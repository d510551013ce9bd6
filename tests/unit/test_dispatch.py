"""Tests for auto-advance dispatch and the delivery collaborators."""

import json

import httpx
import pytest

from docroute.activity import ActivityLogger
from docroute.config import EmailJSConfig
from docroute.delivery import (
    EmailJSSender,
    HttpPackageUploader,
    JsonPackageGenerator,
    OutboundPackage,
)
from docroute.dispatch import AutoAdvanceDispatcher
from docroute.models import StepStatus
from docroute.persistence import ActivityType

from conftest import return_payload, serial

EMAILJS = EmailJSConfig(service_id="svc", template_id="tpl", public_key="pub")


class FakeUploader:
    def __init__(self, fail=False):
        self.fail = fail
        self.uploaded = []

    async def upload(self, package):
        if self.fail:
            raise RuntimeError("storage down")
        self.uploaded.append(package)
        return f"https://files.example.com/{package.id}"


class FakeEmailSender:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def send(self, document, workflow, package, hosted_url=None):
        if self.fail:
            raise RuntimeError("smtp refused")
        self.sent.append((package.participant.email, hosted_url))


class BrokenGenerator:
    async def generate(self, document, workflow, step_index):
        raise RuntimeError("cannot render")


def _dispatcher(repo, engine, **kwargs):
    kwargs.setdefault("generator", JsonPackageGenerator(engine))
    return AutoAdvanceDispatcher(repo, ActivityLogger(repo), **kwargs)


async def _types(repo):
    return [a.type for a in await repo.list_activity()]


@pytest.mark.asyncio
async def test_advance_packages_uploads_and_emails(repo, engine, make_workflow):
    wf = await make_workflow([serial("alice"), serial("bob")])
    uploader, sender = FakeUploader(), FakeEmailSender()
    dispatcher = _dispatcher(repo, engine, uploader=uploader, email_sender=sender)

    report = await dispatcher.advance(wf.id)

    assert report.errors == []
    assert report.emailed
    assert report.hosted_url.endswith(report.package_id)
    assert sender.sent == [("alice@example.com", report.hosted_url)]

    stored = await repo.get_workflow(wf.id)
    assert stored.steps[0].status == StepStatus.SENT
    assert stored.storage_package_ids == [report.package_id]
    types = await _types(repo)
    assert ActivityType.PACKAGE_GENERATED in types
    assert ActivityType.PACKAGE_UPLOADED in types
    assert ActivityType.PACKAGE_EMAILED in types

    body = json.loads(uploader.uploaded[0].content)
    assert body["stepId"] == wf.steps[0].id
    assert body["document"]["content"] == "v1"


@pytest.mark.asyncio
async def test_advance_follows_engine_completion(repo, engine, make_workflow):
    sender = FakeEmailSender()
    engine.dispatcher = _dispatcher(repo, engine, email_sender=sender)
    wf = await make_workflow([serial("alice"), serial("bob")])

    await engine.process_return(wf.id, return_payload(wf, 0))
    await engine.drain()

    stored = await repo.get_workflow(wf.id)
    assert stored.current_step_index == 1
    assert stored.steps[1].status == StepStatus.SENT
    assert sender.sent[0][0] == "bob@example.com"


@pytest.mark.asyncio
async def test_delivery_failures_are_recorded_not_raised(repo, engine, make_workflow):
    wf = await make_workflow([serial("alice")])
    dispatcher = _dispatcher(
        repo, engine, uploader=FakeUploader(fail=True), email_sender=FakeEmailSender(fail=True)
    )

    report = await dispatcher.advance(wf.id)

    assert report.hosted_url is None
    assert not report.emailed
    assert [e.split(":")[0] for e in report.errors] == ["upload", "email"]
    types = await _types(repo)
    assert types.count(ActivityType.AUTO_ADVANCE_FAILED) == 2
    # the step still went out even though notification failed
    assert (await repo.get_workflow(wf.id)).steps[0].status == StepStatus.SENT


@pytest.mark.asyncio
async def test_generation_failure_returns_none(repo, engine, make_workflow):
    wf = await make_workflow([serial("alice")])
    dispatcher = _dispatcher(repo, engine, generator=BrokenGenerator())

    assert await dispatcher.advance(wf.id) is None
    assert ActivityType.AUTO_ADVANCE_FAILED in await _types(repo)
    assert (await repo.get_workflow(wf.id)).steps[0].status == StepStatus.PENDING


@pytest.mark.asyncio
async def test_nothing_to_advance(repo, engine, make_workflow):
    wf = await make_workflow([serial("alice")])
    dispatcher = _dispatcher(repo, engine)

    await engine.mark_step_as_sent(wf.id, 0)
    assert await dispatcher.advance(wf.id) is None

    await engine.cancel_workflow(wf.id)
    assert await dispatcher.advance(wf.id) is None
    assert await dispatcher.advance("missing") is None


@pytest.mark.asyncio
async def test_emailjs_sender_posts_template(repo, make_workflow):
    wf = await make_workflow([serial("alice")])
    document = await repo.get_document(wf.document_id)
    package = OutboundPackage(
        workflow_id=wf.id,
        step_id=wf.steps[0].id,
        step_index=0,
        participant=wf.steps[0].participant,
        filename="contract.json",
        content="{}",
    )
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, text="OK")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sender = EmailJSSender(EMAILJS, client=client)
        await sender.send(document, wf, package, "https://files.example.com/x")

    assert captured["url"] == EMAILJS.api_url
    assert captured["body"]["service_id"] == "svc"
    assert captured["body"]["user_id"] == "pub"
    params = captured["body"]["template_params"]
    assert params["to_email"] == "alice@example.com"
    assert params["package_url"] == "https://files.example.com/x"
    assert params["from_name"] == "Olivia Owner"


def test_emailjs_sender_requires_configuration():
    with pytest.raises(ValueError):
        EmailJSSender(EmailJSConfig())


@pytest.mark.asyncio
async def test_http_uploader_returns_hosted_url(make_workflow):
    wf = await make_workflow([serial("alice")])
    package = OutboundPackage(
        workflow_id=wf.id,
        step_id=wf.steps[0].id,
        step_index=0,
        participant=wf.steps[0].participant,
        filename="contract.json",
        content="{}",
    )

    def handler(request):
        assert request.headers["Authorization"] == "Bearer secret"
        return httpx.Response(201, json={"url": "https://files.example.com/p1"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        uploader = HttpPackageUploader("https://upload.example.com", "secret", client=client)
        assert await uploader.upload(package) == "https://files.example.com/p1"

    def failing(request):
        return httpx.Response(500)

    async with httpx.AsyncClient(transport=httpx.MockTransport(failing)) as client:
        uploader = HttpPackageUploader("https://upload.example.com", client=client)
        with pytest.raises(httpx.HTTPStatusError):
            await uploader.upload(package)


class CancellingGenerator:
    """Cancels the workflow while its package is being built."""

    def __init__(self, engine):
        self.engine = engine
        self.inner = JsonPackageGenerator(engine)

    async def generate(self, document, workflow, step_index):
        await self.engine.cancel_workflow(workflow.id, reason="withdrawn")
        return await self.inner.generate(document, workflow, step_index)


@pytest.mark.asyncio
async def test_cancelled_workflow_is_not_delivered(repo, engine, make_workflow):
    wf = await make_workflow([serial("alice")])
    uploader, sender = FakeUploader(), FakeEmailSender()
    dispatcher = _dispatcher(
        repo, engine, generator=CancellingGenerator(engine), uploader=uploader, email_sender=sender
    )

    assert await dispatcher.advance(wf.id) is None
    assert uploader.uploaded == []
    assert sender.sent == []
    assert ActivityType.AUTO_ADVANCE_FAILED in await _types(repo)
    stored = await repo.get_workflow(wf.id)
    assert stored.is_cancelled
    assert stored.storage_package_ids == []
