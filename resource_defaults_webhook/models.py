"""
Minimal models for Kubernetes AdmissionReview and Pod used by this webhook.
We parse only the fields we need and ignore unknowns so that new Kubernetes
fields don't break this app. The decoded object is kept as-is next to the
model for patch strategies that rewrite the whole object.

References:
- AdmissionReview request/response shape:
  https://kubernetes.io/docs/reference/access-authn-authz/extensible-admission-controllers/#request-and-response
- Pod (core/v1) API reference:
  https://kubernetes.io/docs/reference/generated/kubernetes-api/latest/#pod-v1-core
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import EnvelopeDecodeError, ObjectDecodeError

DEFAULT_API_VERSION = "admission.k8s.io/v1"


def _get(d: dict[str, Any], key: str, default, uid: str, where: str):
    # Missing or null -> default; present with the wrong type -> decode error
    v = d.get(key)
    if v is None:
        return default
    if not isinstance(v, type(default)):
        raise ObjectDecodeError(
            uid, f"{where}.{key} must be {type(default).__name__}, got {type(v).__name__}"
        )
    return v


@dataclass
class ContainerModel:
    name: str
    # None when the submitted container omits the map entirely
    resources: dict[str, Any] | None
    requests: dict[str, Any] | None
    limits: dict[str, Any] | None

    @staticmethod
    def from_dict(d: Any, uid: str, index: int) -> "ContainerModel":
        where = f"spec.containers[{index}]"
        if not isinstance(d, dict):
            raise ObjectDecodeError(uid, f"{where} must be an object")
        name = d.get("name", "")
        resources = d.get("resources")
        if resources is None:
            return ContainerModel(name=str(name), resources=None, requests=None, limits=None)
        if not isinstance(resources, dict):
            raise ObjectDecodeError(uid, f"{where}.resources must be an object")
        requests = resources.get("requests")
        limits = resources.get("limits")
        for key, value in (("requests", requests), ("limits", limits)):
            if value is not None and not isinstance(value, dict):
                raise ObjectDecodeError(uid, f"{where}.resources.{key} must be an object")
        return ContainerModel(
            name=str(name), resources=resources, requests=requests, limits=limits
        )

    def has_request(self, resource: str) -> bool:
        return self.requests is not None and resource in self.requests

    def has_limit(self, resource: str) -> bool:
        return self.limits is not None and resource in self.limits


@dataclass
class PodModel:
    name: str
    namespace: str
    labels: dict[str, str]
    containers: list[ContainerModel]
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @staticmethod
    def from_dict(d: Any, uid: str, namespace: str = "") -> "PodModel":
        if not isinstance(d, dict):
            raise ObjectDecodeError(uid, "object must be a JSON object")
        kind = d.get("kind")
        if kind is not None and kind != "Pod":
            raise ObjectDecodeError(uid, f"expected kind Pod, got {kind!r}")
        meta = _get(d, "metadata", {}, uid, "object")
        spec = _get(d, "spec", {}, uid, "object")
        labels = _get(meta, "labels", {}, uid, "metadata")
        for key, value in labels.items():
            if not isinstance(value, str):
                raise ObjectDecodeError(uid, f"metadata.labels[{key!r}] must be a string")
        containers = _get(spec, "containers", [], uid, "spec")
        return PodModel(
            name=str(meta.get("name") or meta.get("generateName") or ""),
            namespace=namespace or str(meta.get("namespace") or ""),
            labels=labels,
            containers=[
                ContainerModel.from_dict(c, uid, i) for i, c in enumerate(containers)
            ],
            raw=d,
        )


@dataclass
class AdmissionRequestModel:
    uid: str
    namespace: str
    obj: Any
    kind: str = ""
    operation: str = "CREATE"

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Optional["AdmissionRequestModel"]:
        uid = d.get("uid")
        if not isinstance(uid, str) or not uid:
            return None
        kind = d.get("kind")
        return AdmissionRequestModel(
            uid=uid,
            namespace=str(d.get("namespace") or ""),
            obj=d.get("object"),
            kind=str(kind.get("kind", "")) if isinstance(kind, dict) else "",
            operation=str(d.get("operation", "CREATE")),
        )

    def mutable(self) -> bool:
        """Only Pod creations and updates carry an object worth defaulting."""
        return self.operation in ("CREATE", "UPDATE") and self.kind in ("", "Pod")

    def pod(self) -> PodModel:
        """Decode the embedded object. Raises ObjectDecodeError."""
        return PodModel.from_dict(self.obj, self.uid, self.namespace)


@dataclass
class AdmissionReviewModel:
    request: AdmissionRequestModel
    api_version: str = DEFAULT_API_VERSION

    @staticmethod
    def from_dict(d: Any) -> Optional["AdmissionReviewModel"]:
        if not isinstance(d, dict):
            return None
        req_raw = d.get("request")
        req = (
            AdmissionRequestModel.from_dict(req_raw)
            if isinstance(req_raw, dict)
            else None
        )
        if req is None:
            return None
        api_version = d.get("apiVersion")
        return AdmissionReviewModel(
            request=req,
            api_version=api_version
            if isinstance(api_version, str) and api_version
            else DEFAULT_API_VERSION,
        )


def _reject_constant(token: str):
    # NaN and Infinity are not JSON and could not be written back out
    raise ValueError(f"non-standard JSON constant {token}")


def decode_review(body: bytes) -> AdmissionReviewModel:
    """Decode the HTTP body. Raises EnvelopeDecodeError when no UID can be recovered."""
    try:
        payload = json.loads(body, parse_constant=_reject_constant)
    except (TypeError, ValueError, RecursionError) as e:
        raise EnvelopeDecodeError(f"body is not valid JSON: {e}") from e
    review = AdmissionReviewModel.from_dict(payload)
    if review is None:
        raise EnvelopeDecodeError("body is not an AdmissionReview with a request uid")
    return review


@dataclass(frozen=True)
class ResourceMutation:
    """One missing resource entry to fill on one container."""

    container_index: int
    section: str  # "requests" or "limits"
    resource: str  # "cpu" or "memory"
    value: str

    @property
    def path(self) -> str:
        return (
            f"/spec/containers/{self.container_index}"
            f"/resources/{self.section}/{self.resource}"
        )
