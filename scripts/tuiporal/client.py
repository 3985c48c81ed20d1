"""
Remote client facade over the temporalio SDK.

The facade owns the live ``temporalio.client.Client`` for the active
profile. Connections are opened lazily, reused, rebuilt after repeated
transport failures, and every error leaving this module is one of the
``RemoteError`` kinds from ``tuiporal.errors``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable

from google.protobuf.json_format import MessageToDict
from temporalio.api.enums.v1 import EventType, NamespaceState, PendingActivityState
from temporalio.api.workflowservice.v1 import ListNamespacesRequest
from temporalio.client import Client
from temporalio.service import RPCError, RPCStatusCode, TLSConfig

from tuiporal.errors import AuthError, RemoteError, RemoteRejected, TransportError
from tuiporal.profiles import ApiKeyCredential, MtlsCredential, Profile
from tuiporal.providers import (
    Ack,
    HistoryEventInfo,
    ListQuery,
    NamespaceInfo,
    Page,
    PendingActivityInfo,
    WorkflowDetail,
    WorkflowStatus,
    WorkflowSummary,
)

logger = logging.getLogger(__name__)

Connector = Callable[[Profile, str], Awaitable[Any]]

_AUTH_STATUSES = {
    RPCStatusCode.UNAUTHENTICATED,
    RPCStatusCode.PERMISSION_DENIED,
}
_TRANSPORT_STATUSES = {
    RPCStatusCode.UNAVAILABLE,
    RPCStatusCode.DEADLINE_EXCEEDED,
    RPCStatusCode.CANCELLED,
    RPCStatusCode.UNKNOWN,
    RPCStatusCode.RESOURCE_EXHAUSTED,
    RPCStatusCode.ABORTED,
    RPCStatusCode.INTERNAL,
}
_AUTH_MARKERS = ("unauthenticated", "permission denied", "unauthorized")
_SIGNALED = EventType.EVENT_TYPE_WORKFLOW_EXECUTION_SIGNALED


def translate_error(exc: BaseException) -> RemoteError:
    """Convert any transport-level exception into a RemoteError kind."""
    if isinstance(exc, RemoteError):
        return exc
    if isinstance(exc, RPCError):
        message = exc.message or exc.status.name
        if exc.status in _AUTH_STATUSES:
            return AuthError(message)
        if exc.status in _TRANSPORT_STATUSES:
            return TransportError(message)
        return RemoteRejected(exc.status.name, exc.message)
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return TransportError("Request timed out")
    if isinstance(exc, OSError):
        return TransportError(str(exc) or type(exc).__name__)
    if isinstance(exc, RuntimeError):
        # Client.connect wraps handshake failures in a RuntimeError.
        message = str(exc)
        if any(marker in message.lower() for marker in _AUTH_MARKERS):
            return AuthError(message)
        return TransportError(message)

    logger.error("Unexpected error from transport", exc_info=exc)
    return TransportError(str(exc) or type(exc).__name__)


def _read_pem(path: Path | None) -> bytes | None:
    if path is None:
        return None
    return Path(path).expanduser().read_bytes()


async def connect_client(profile: Profile, namespace: str) -> Client:
    """Open a temporalio client for ``profile``.

    TLS parameters are derived once here from the credential variant.
    """
    tls: TLSConfig | bool = False
    api_key = None
    credential = profile.credential

    if profile.uses_tls:
        client_cert = client_key = None
        if isinstance(credential, MtlsCredential):
            client_cert = _read_pem(credential.cert_path)
            client_key = _read_pem(credential.key_path)
        tls = TLSConfig(
            server_root_ca_cert=_read_pem(profile.ca_path),
            domain=profile.server_name,
            client_cert=client_cert,
            client_private_key=client_key,
        )
    if isinstance(credential, ApiKeyCredential):
        api_key = credential.api_key

    logger.info(
        "Connecting to Temporal",
        extra={"address": profile.address, "namespace": namespace, "tls": bool(tls)},
    )
    return await Client.connect(
        profile.address,
        namespace=namespace,
        tls=tls,
        api_key=api_key,
    )


def _timestamp(value: Any) -> datetime | None:
    if value is None or not (value.seconds or value.nanos):
        return None
    return value.ToDatetime(tzinfo=timezone.utc)


def _enum_label(name: str, prefix: str) -> str:
    """``EVENT_TYPE_TIMER_FIRED`` -> ``TimerFired``."""
    if name.startswith(prefix):
        name = name[len(prefix):]
    return "".join(part.capitalize() for part in name.split("_"))


def _enum_name(enum: Any, value: int, prefix: str) -> str:
    try:
        return _enum_label(enum.Name(value), prefix)
    except ValueError:
        return str(value)


def summary_from_execution(execution: Any) -> WorkflowSummary:
    """Build a WorkflowSummary from a ``temporalio.client.WorkflowExecution``."""
    status = execution.status.name if execution.status is not None else None
    return WorkflowSummary(
        workflow_id=execution.id,
        run_id=execution.run_id,
        workflow_type=execution.workflow_type,
        status=WorkflowStatus.from_remote(status),
        start_time=execution.start_time,
        close_time=execution.close_time,
        task_queue=execution.task_queue,
    )


def event_attributes(event: Any) -> dict[str, Any]:
    """The populated ``attributes`` oneof of a history event, as plain data."""
    field_name = event.WhichOneof("attributes")
    if field_name is None:
        return {}
    return MessageToDict(getattr(event, field_name))


def detail_from_description(description: Any, events: list[Any]) -> WorkflowDetail:
    """Build a WorkflowDetail from a describe response and history events."""
    pending = tuple(
        PendingActivityInfo(
            activity_id=activity.activity_id,
            activity_type=activity.activity_type.name,
            state=_enum_name(PendingActivityState, activity.state, "PENDING_ACTIVITY_STATE_"),
            attempt=activity.attempt,
        )
        for activity in description.raw_description.pending_activities
    )

    history = []
    signal_names: list[str] = []
    for event in events:
        history.append(
            HistoryEventInfo(
                event_id=event.event_id,
                event_type=_enum_name(EventType, event.event_type, "EVENT_TYPE_"),
                event_time=_timestamp(event.event_time),
                attributes=event_attributes(event),
            )
        )
        if event.event_type == _SIGNALED:
            name = event.workflow_execution_signaled_event_attributes.signal_name
            if name and name not in signal_names:
                signal_names.append(name)

    return WorkflowDetail(
        summary=summary_from_execution(description),
        pending_activities=pending,
        history=tuple(history),
        history_length=description.history_length or len(history),
        signal_names=tuple(signal_names),
    )


class RemoteClientFacade:
    """Capability-typed wrapper around the connection for one profile."""

    def __init__(
        self,
        profile: Profile,
        *,
        namespace: str | None = None,
        connector: Connector = connect_client,
        request_timeout: float = 10.0,
        max_consecutive_failures: int = 3,
        history_limit: int = 200,
    ):
        self._profile = profile
        self._namespace = namespace or profile.namespace
        self._connector = connector
        self._request_timeout = request_timeout
        self._max_failures = max_consecutive_failures
        self._history_limit = history_limit

        self._client: Any = None
        self._connect_lock = asyncio.Lock()
        self._generation = 0
        self._failures = 0
        self._auth_error: AuthError | None = None

    @property
    def profile(self) -> Profile:
        return self._profile

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def connected(self) -> bool:
        return self._client is not None

    @property
    def auth_error(self) -> AuthError | None:
        return self._auth_error

    def reconnect(self, profile: Profile | None = None, namespace: str | None = None) -> None:
        """Drop the connection and retarget; the next call connects lazily.

        Bumps the connection generation so results of calls issued
        against the old target can be recognised and discarded.
        """
        if profile is not None:
            self._profile = profile
        self._namespace = namespace or self._profile.namespace
        self._generation += 1
        self._client = None
        self._failures = 0
        self._auth_error = None
        logger.info(
            "Connection reset",
            extra={
                "profile": self._profile.name,
                "namespace": self._namespace,
                "generation": self._generation,
            },
        )

    async def _get_client(self) -> Any:
        if self._client is not None:
            return self._client

        generation = self._generation
        profile, namespace = self._profile, self._namespace
        async with self._connect_lock:
            if self._client is not None and generation == self._generation:
                return self._client
            client = await self._connector(profile, namespace)
            if generation == self._generation:
                self._client = client
                logger.info("Connected", extra={"profile": profile.name, "generation": generation})
            return client

    def _record_failure(self, operation: str, error: RemoteError, generation: int) -> None:
        logger.warning(
            "Remote call failed",
            extra={"operation": operation, "kind": error.kind, "error": error.message},
        )
        if generation != self._generation:
            return

        if isinstance(error, AuthError):
            self._auth_error = error
            self._client = None
        elif isinstance(error, TransportError):
            self._failures += 1
            if self._failures >= self._max_failures and self._client is not None:
                logger.warning(
                    "Connection considered broken, rebuilding on next call",
                    extra={"failures": self._failures},
                )
                self._client = None
                self._failures = 0
        else:
            self._failures = 0

    async def _call(self, operation: str, call: Callable[[Any], Awaitable[Any]]) -> Any:
        if self._auth_error is not None:
            raise self._auth_error

        generation = self._generation

        async def connected_call() -> Any:
            return await call(await self._get_client())

        try:
            # One deadline covers connecting and the call itself.
            result = await asyncio.wait_for(connected_call(), self._request_timeout)
        except Exception as exc:
            error = translate_error(exc)
            self._record_failure(operation, error, generation)
            raise error from exc

        if generation == self._generation:
            self._failures = 0
        return result

    async def list_workflows(self, query: ListQuery) -> Page:
        async def call(client: Any) -> Page:
            iterator = client.list_workflows(
                query.visibility_query() or None,
                page_size=query.page_size,
                next_page_token=query.page_token,
            )
            await iterator.fetch_next_page()
            items = tuple(summary_from_execution(e) for e in iterator.current_page or ())
            return Page(items=items, next_page_token=iterator.next_page_token or None)

        return await self._call("list_workflows", call)

    async def describe_workflow(
        self, workflow_id: str, run_id: str | None = None
    ) -> WorkflowDetail:
        async def call(client: Any) -> WorkflowDetail:
            handle = client.get_workflow_handle(workflow_id, run_id=run_id)
            description = await handle.describe()
            events = []
            async for event in handle.fetch_history_events(
                page_size=min(self._history_limit, 1000)
            ):
                events.append(event)
                if len(events) >= self._history_limit:
                    break
            return detail_from_description(description, events)

        return await self._call("describe_workflow", call)

    async def terminate(
        self, workflow_id: str, reason: str, run_id: str | None = None
    ) -> Ack:
        async def call(client: Any) -> Ack:
            handle = client.get_workflow_handle(workflow_id, run_id=run_id)
            await handle.terminate(reason=reason)
            return Ack(workflow_id, "terminate", {"reason": reason})

        return await self._call("terminate", call)

    async def cancel(self, workflow_id: str, run_id: str | None = None) -> Ack:
        async def call(client: Any) -> Ack:
            handle = client.get_workflow_handle(workflow_id, run_id=run_id)
            await handle.cancel()
            return Ack(workflow_id, "cancel")

        return await self._call("cancel", call)

    async def signal(
        self,
        workflow_id: str,
        signal_name: str,
        payload: Any = None,
        run_id: str | None = None,
    ) -> Ack:
        async def call(client: Any) -> Ack:
            handle = client.get_workflow_handle(workflow_id, run_id=run_id)
            if payload is None:
                await handle.signal(signal_name)
            else:
                await handle.signal(signal_name, payload)
            return Ack(workflow_id, "signal", {"signal_name": signal_name})

        return await self._call("signal", call)

    async def list_namespaces(self) -> list[NamespaceInfo]:
        async def call(client: Any) -> list[NamespaceInfo]:
            namespaces: list[NamespaceInfo] = []
            token = b""
            while True:
                response = await client.workflow_service.list_namespaces(
                    ListNamespacesRequest(page_size=100, next_page_token=token)
                )
                for item in response.namespaces:
                    info = item.namespace_info
                    namespaces.append(
                        NamespaceInfo(
                            name=info.name,
                            state=_enum_name(NamespaceState, info.state, "NAMESPACE_STATE_"),
                            description=info.description,
                        )
                    )
                token = response.next_page_token
                if not token:
                    return namespaces

        return await self._call("list_namespaces", call)
