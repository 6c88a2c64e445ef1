"""Tests for the Kubernetes orchestrator."""

import asyncio
import threading
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from app.jobs.errors import UpstreamUnavailableError
from app.orchestrator.k8s import KubernetesOrchestrator, build_job_manifest


def job_object(name: str, conditions=None, active: int = 0) -> client.V1Job:
    return client.V1Job(
        metadata=client.V1ObjectMeta(name=name, resource_version="42"),
        status=client.V1JobStatus(
            active=active,
            conditions=[
                client.V1JobCondition(type=c, status="True") for c in (conditions or [])
            ] or None,
        ),
    )


@pytest.fixture
def batch_api():
    api = MagicMock()
    api.api_client = client.ApiClient()
    return api


class TestBuildJobManifest:
    def test_manifest_fields(self, job):
        manifest = build_job_manifest(job, backoff_limit=5)

        assert manifest.metadata.name == job.name
        assert manifest.spec.parallelism == 3
        assert manifest.spec.completions == 3
        assert manifest.spec.backoff_limit == 5

        pod = manifest.spec.template.spec
        assert pod.restart_policy == "Never"
        container = pod.containers[0]
        assert container.name == job.name
        assert container.image == "registry.local/profiler:1"
        assert container.args == ["-u", "http://profiler-tester/", "-i", job.id]
        assert [(e.name, e.value) for e in container.env] == [
            ("COLUMBUS_ACCESS_TOKEN", "secret-token")
        ]


class TestKubernetesOrchestrator:
    @pytest.mark.asyncio
    async def test_create_workload(self, job, batch_api):
        batch_api.create_namespaced_job.return_value = job_object(job.name)
        orchestrator = KubernetesOrchestrator(namespace="jobs", api=batch_api)

        name = await orchestrator.create_workload(job)

        assert name == job.name
        namespace, manifest = batch_api.create_namespaced_job.call_args.args
        assert namespace == "jobs"
        assert manifest.spec.parallelism == job.total_workers

    @pytest.mark.asyncio
    async def test_create_workload_api_error(self, job, batch_api):
        batch_api.create_namespaced_job.side_effect = ApiException(status=409, reason="AlreadyExists")
        orchestrator = KubernetesOrchestrator(api=batch_api)

        with pytest.raises(UpstreamUnavailableError):
            await orchestrator.create_workload(job)

    @pytest.mark.asyncio
    async def test_watch_yields_status_and_resumes(self, batch_api):
        def broken_stream():
            raise ApiException(status=500, reason="Internal Server Error")
            yield  # pragma: no cover

        streams = [
            iter([{"type": "ADDED", "object": job_object("j1", active=2)}]),
            iter([{"type": "MODIFIED", "object": job_object("j1", ["Complete"])}]),
            broken_stream(),
        ]
        with patch("app.orchestrator.k8s.watch.Watch") as watch_cls:
            watch_cls.return_value.stream.side_effect = streams
            orchestrator = KubernetesOrchestrator(namespace="jobs", api=batch_api)

            events = orchestrator.watch("j1")
            first = await events.__anext__()
            second = await events.__anext__()
            with pytest.raises(UpstreamUnavailableError):
                await events.__anext__()

        assert first.name == "j1"
        assert first.status["active"] == 2
        assert second.is_complete
        stream_calls = watch_cls.return_value.stream.call_args_list
        assert stream_calls[0].kwargs == {"field_selector": "metadata.name=j1", "timeout_seconds": 60}
        assert stream_calls[1].kwargs["resource_version"] == "42"

    @pytest.mark.asyncio
    async def test_watch_error_event(self, batch_api):
        with patch("app.orchestrator.k8s.watch.Watch") as watch_cls:
            watch_cls.return_value.stream.return_value = iter(
                [{"type": "ERROR", "object": {"code": 500}, "raw_object": {"code": 500}}]
            )
            orchestrator = KubernetesOrchestrator(api=batch_api)

            with pytest.raises(UpstreamUnavailableError):
                await orchestrator.watch("j1").__anext__()

    @pytest.mark.asyncio
    async def test_idle_watches_do_not_delay_chunk_writes(self, coordinator, batch_api):
        release = threading.Event()

        def idle_stream(*args, **kwargs):
            release.wait(10)
            return
            yield  # pragma: no cover

        orchestrator = KubernetesOrchestrator(api=batch_api, watch_threads=64)
        with patch("app.orchestrator.k8s.watch.Watch") as watch_cls:
            watch_cls.return_value.stream.side_effect = idle_stream
            watches = [
                asyncio.create_task(orchestrator.watch(f"idle-{i}").__anext__())
                for i in range(40)
            ]
            await asyncio.sleep(0.1)
            try:
                job = coordinator.new_job("img", "in", "out", 1, "tok")
                written = await asyncio.wait_for(coordinator.submit_chunk(job.id, b"h\na\n"), 3)
            finally:
                for task in watches:
                    task.cancel()
                await asyncio.gather(*watches, return_exceptions=True)
                release.set()
                orchestrator.close()

        assert written == 4
        assert coordinator.artifacts.read(job.id) == b"h\na\n"

    def test_close_shuts_down_watch_threads(self, batch_api):
        orchestrator = KubernetesOrchestrator(api=batch_api)
        orchestrator.close()

        with pytest.raises(RuntimeError):
            orchestrator._watch_executor.submit(lambda: None)
