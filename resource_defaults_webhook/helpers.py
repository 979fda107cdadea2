import base64
import json
import logging
from typing import Any

from .config import Policy, ResourceDefaults
from .errors import QuantityParseError, ResponseEncodeError
from .models import DEFAULT_API_VERSION, PodModel, ResourceMutation
from .quantity import cpu_quantity, memory_quantity

log = logging.getLogger("resource-defaults-webhook")


def namespace_in_scope(namespace: str, policy: Policy) -> bool:
    return namespace == policy.namespace


def labels_match(labels: dict[str, str], policy: Policy) -> bool:
    """Evaluate whichever label strategy the policy configures."""
    if policy.selector is not None:
        return policy.selector.matches(labels)
    if policy.label_key:
        return policy.label_key in labels and labels[policy.label_key] == policy.label_value
    # Namespace-only policy
    return True


def matches_policy(pod: PodModel, policy: Policy) -> bool:
    """Decide whether the webhook should default this Pod's resources."""
    if not namespace_in_scope(pod.namespace, policy):
        return False
    return labels_match(pod.labels, policy)


def _resolve(raw: str, encode) -> str | None:
    if not raw:
        return None
    try:
        return encode(raw)
    except QuantityParseError:
        # Unparseable defaults are dropped; the rest still apply
        return None


def plan_resource_defaults(
    pod: PodModel, defaults: ResourceDefaults
) -> list[ResourceMutation]:
    """
    List the resource entries to fill, container by container in submission
    order, requests before limits and cpu before memory. Entries the container
    already declares are never included.
    """
    wanted = [
        ("requests", "cpu", _resolve(defaults.cpu_request, cpu_quantity)),
        ("requests", "memory", _resolve(defaults.memory_request, memory_quantity)),
        ("limits", "cpu", _resolve(defaults.cpu_limit, cpu_quantity)),
        ("limits", "memory", _resolve(defaults.memory_limit, memory_quantity)),
    ]

    mutations = []
    for index, container in enumerate(pod.containers):
        for section, resource, value in wanted:
            if value is None:
                continue
            present = (
                container.has_request(resource)
                if section == "requests"
                else container.has_limit(resource)
            )
            if present:
                continue
            mutations.append(ResourceMutation(index, section, resource, value))
    return mutations


def make_admission_response(
    uid: str,
    allowed: bool = True,
    patch: Any | None = None,
    message: str | None = None,
    api_version: str = DEFAULT_API_VERSION,
) -> dict[str, Any]:
    """Return the AdmissionReview the webhook sends back to the API server."""
    resp: dict[str, Any] = {"uid": uid, "allowed": allowed}

    if patch:
        resp["patchType"] = "JSONPatch"
        resp["patch"] = base64.b64encode(encode_review(patch)).decode()

    if not allowed and message:
        resp["status"] = {"code": 400, "message": message}

    return {
        "apiVersion": api_version,
        "kind": "AdmissionReview",
        "response": resp,
    }


def encode_review(review: Any) -> bytes:
    """Serialize a review (or patch payload). Raises ResponseEncodeError."""
    try:
        return json.dumps(review, allow_nan=False).encode()
    except (TypeError, ValueError) as e:
        raise ResponseEncodeError(f"could not serialize response: {e}") from e
