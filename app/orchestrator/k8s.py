"""Kubernetes Jobs as the worker orchestrator."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import AsyncGenerator, Optional

import urllib3
from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from app.config import Settings
from app.jobs.errors import UpstreamUnavailableError
from app.jobs.models import JobRecord, WorkloadEvent
from app.orchestrator.base import Orchestrator

logger = logging.getLogger(__name__)

_END = object()


def load_kube_config(in_cluster: bool = True) -> None:
    """Load client credentials; raises if the cluster config is unavailable."""
    if in_cluster:
        config.load_incluster_config()
    else:
        config.load_kube_config()


def build_job_manifest(
    job: JobRecord,
    backoff_limit: int = 5,
    token_env: str = "COLUMBUS_ACCESS_TOKEN",
) -> client.V1Job:
    """Batch Job running ``job.total_workers`` workers at once.

    Pods never restart in place; failed pods count against ``backoff_limit``.
    """
    container = client.V1Container(
        name=job.name,
        image=job.image_ref,
        args=["-u", job.callback_base_url, "-i", job.id],
        env=[client.V1EnvVar(name=token_env, value=job.access_token)],
    )
    return client.V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=client.V1ObjectMeta(name=job.name),
        spec=client.V1JobSpec(
            template=client.V1PodTemplateSpec(
                spec=client.V1PodSpec(containers=[container], restart_policy="Never"),
            ),
            completions=job.total_workers,
            parallelism=job.total_workers,
            backoff_limit=backoff_limit,
        ),
    )


class KubernetesOrchestrator(Orchestrator):
    def __init__(
        self,
        namespace: str = "default",
        backoff_limit: int = 5,
        token_env: str = "COLUMBUS_ACCESS_TOKEN",
        api: Optional[client.BatchV1Api] = None,
        watch_threads: int = 128,
        watch_timeout_seconds: int = 60,
    ):
        self.namespace = namespace
        self.backoff_limit = backoff_limit
        self.token_env = token_env
        self.watch_timeout_seconds = watch_timeout_seconds
        self._api = api or client.BatchV1Api()
        # Each live watch parks a thread in a blocking read; keep them out of
        # the default executor that chunk writes and uploads run on.
        self._watch_executor = ThreadPoolExecutor(
            max_workers=watch_threads, thread_name_prefix="k8s-watch"
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "KubernetesOrchestrator":
        load_kube_config(settings.kube_in_cluster)
        return cls(
            namespace=settings.orchestrator_namespace,
            backoff_limit=settings.worker_backoff_limit,
            token_env=settings.worker_token_env,
            watch_threads=settings.watch_max_threads,
            watch_timeout_seconds=settings.watch_timeout_seconds,
        )

    async def create_workload(self, job: JobRecord) -> str:
        manifest = build_job_manifest(job, self.backoff_limit, self.token_env)
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(
                None, self._api.create_namespaced_job, self.namespace, manifest
            )
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise UpstreamUnavailableError(f"Could not create Job {job.name}: {e}") from e
        name = result.metadata.name
        logger.info(f"Created Job {name} with {job.total_workers} workers")
        return name

    def _to_event(self, obj: client.V1Job) -> WorkloadEvent:
        status = self._api.api_client.sanitize_for_serialization(obj.status) or {}
        return WorkloadEvent(name=obj.metadata.name, status=status)

    async def watch(self, name: str) -> AsyncGenerator[WorkloadEvent, None]:
        """Follow one Job's status.

        The API server closes watches periodically; those are resumed from the
        last seen resourceVersion. Only real errors reach the caller.
        """
        loop = asyncio.get_running_loop()
        resource_version = None
        while True:
            w = watch.Watch()
            kwargs = {
                "field_selector": f"metadata.name={name}",
                "timeout_seconds": self.watch_timeout_seconds,
            }
            if resource_version:
                kwargs["resource_version"] = resource_version
            stream = iter(w.stream(self._api.list_namespaced_job, self.namespace, **kwargs))
            try:
                while True:
                    event = await loop.run_in_executor(self._watch_executor, next, stream, _END)
                    if event is _END:
                        break
                    obj = event["object"]
                    if event.get("type") == "ERROR" or not isinstance(obj, client.V1Job):
                        raise UpstreamUnavailableError(f"Watch error for Job {name}: {event.get('raw_object')}")
                    resource_version = obj.metadata.resource_version
                    yield self._to_event(obj)
            except ApiException as e:
                if e.status == 410:
                    logger.info(f"Watch for Job {name} expired, restarting from current state")
                    resource_version = None
                    continue
                raise UpstreamUnavailableError(f"Watch for Job {name} failed: {e}") from e
            except urllib3.exceptions.HTTPError as e:
                raise UpstreamUnavailableError(f"Watch for Job {name} failed: {e}") from e
            finally:
                w.stop()
            logger.debug(f"Watch for Job {name} closed by server, resuming")

    def close(self) -> None:
        """Release watch threads. Blocked reads end at the watch timeout."""
        self._watch_executor.shutdown(wait=False, cancel_futures=True)
