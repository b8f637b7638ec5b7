"""
Callback delivery for downloaded job results.

A callback is described by a serializable descriptor stored on the job at
enqueue time and resolved at delivery time:
- HANDLER: a function the host registered under a name in a CallbackRegistry
- WEBHOOK: a URL the content is POSTed to

Delivery never raises. A failed delivery is reported as False and the
lifecycle counts it against the job's callback retry counter.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

import httpx

from mws_jobs.jobs.models import JobFamily

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 30.0


class CallbackKind(str, Enum):
    HANDLER = "handler"
    WEBHOOK = "webhook"


class CallbackResolutionError(LookupError):
    """Raised when a descriptor names a handler that is not registered."""

    def __init__(self, message: str, target: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.target = target

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, target={self.target!r})"


@dataclass(frozen=True)
class CallbackDescriptor:
    """
    Where to deliver a job result.

    Attributes:
        kind: handler or webhook
        target: Registered handler name, or webhook URL
        arguments: JSON-serializable data handed back to the callback
    """
    kind: CallbackKind
    target: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def handler(cls, name: str, **arguments: Any) -> "CallbackDescriptor":
        return cls(kind=CallbackKind.HANDLER, target=name, arguments=arguments)

    @classmethod
    def webhook(cls, url: str, **arguments: Any) -> "CallbackDescriptor":
        return cls(kind=CallbackKind.WEBHOOK, target=url, arguments=arguments)

    @property
    def is_empty(self) -> bool:
        return not self.target or not self.target.strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "target": self.target,
            "arguments": dict(self.arguments),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CallbackDescriptor":
        return cls(
            kind=CallbackKind(data.get("kind", CallbackKind.HANDLER.value)),
            target=data.get("target", ""),
            arguments=dict(data.get("arguments") or {}),
        )


@dataclass(frozen=True)
class CallbackContext:
    """Job details passed to a callback alongside the content."""
    job_id: str
    family: JobFamily
    region: str
    merchant_id: str
    arguments: Dict[str, Any] = field(default_factory=dict)


CallbackHandler = Callable[[bytes, CallbackContext], Any]


class CallbackRegistry:
    """Name -> handler lookup table populated by the host process."""

    def __init__(self):
        self._handlers: Dict[str, CallbackHandler] = {}

    def register(self, name: str, handler: CallbackHandler) -> None:
        if not name:
            raise ValueError("Callback name is required")
        if not callable(handler):
            raise ValueError(f"Callback {name!r} is not callable")
        self._handlers[name] = handler

    def unregister(self, name: str) -> None:
        self._handlers.pop(name, None)

    def resolve(self, name: str) -> CallbackHandler:
        try:
            return self._handlers[name]
        except KeyError:
            raise CallbackResolutionError(f"No callback registered as {name!r}", target=name)

    def __contains__(self, name: str) -> bool:
        return name in self._handlers


class CallbackDispatcher:
    """
    Resolves a descriptor and delivers content to it.

    Webhooks use a sync httpx client created on first use; pass one in to
    share connection pooling with the host.
    """

    def __init__(
        self,
        registry: Optional[CallbackRegistry] = None,
        http_client: Optional[httpx.Client] = None,
        webhook_timeout: float = DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
    ):
        self.registry = registry or CallbackRegistry()
        self._http_client = http_client
        self.webhook_timeout = webhook_timeout

    def _get_http_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self.webhook_timeout)
        return self._http_client

    def _post_webhook(
        self,
        descriptor: CallbackDescriptor,
        content: bytes,
        context: CallbackContext,
    ) -> None:
        headers = {
            "Content-Type": "application/octet-stream",
            "X-Job-Id": context.job_id,
            "X-Job-Family": context.family.value,
            "X-Job-Region": context.region,
            "X-Job-Merchant-Id": context.merchant_id,
        }
        # Body is the content; caller arguments go in a JSON header
        if descriptor.arguments:
            headers["X-Job-Arguments"] = json.dumps(descriptor.arguments, sort_keys=True)

        response = self._get_http_client().post(descriptor.target, content=content, headers=headers)
        response.raise_for_status()

    def dispatch(
        self,
        descriptor: CallbackDescriptor,
        content: bytes,
        context: CallbackContext,
    ) -> bool:
        """
        Deliver content to the callback.

        Returns:
            True if the callback completed, False on any failure
        """
        try:
            if descriptor.kind == CallbackKind.WEBHOOK:
                self._post_webhook(descriptor, content, context)
            else:
                handler = self.registry.resolve(descriptor.target)
                handler(content, context)
        except Exception as e:
            logger.warning(
                "callback.failed",
                extra={
                    "job_id": context.job_id,
                    "family": context.family.value,
                    "region": context.region,
                    "merchant_id": context.merchant_id,
                    "callback_kind": descriptor.kind.value,
                    "callback_target": descriptor.target,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return False

        logger.info(
            "callback.delivered",
            extra={
                "job_id": context.job_id,
                "family": context.family.value,
                "callback_kind": descriptor.kind.value,
                "callback_target": descriptor.target,
            },
        )
        return True

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None
