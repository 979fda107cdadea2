from typing import Any

from ..models import PodModel, ResourceMutation
from .interface import PatchBuilder


class JsonPatchBuilder(PatchBuilder):
    """Ordered RFC 6902 `add` operations addressed by container index."""

    def build(
        self, pod: PodModel, mutations: list[ResourceMutation]
    ) -> list[dict[str, Any]] | None:
        if not mutations:
            return None

        ops: list[dict[str, Any]] = []
        created: set[str] = set()
        for m in mutations:
            container = pod.containers[m.container_index]
            base = f"/spec/containers/{m.container_index}/resources"

            # `add` needs the parent object to exist
            if container.resources is None and base not in created:
                ops.append({"op": "add", "path": base, "value": {}})
                created.add(base)
            section = f"{base}/{m.section}"
            present = container.requests if m.section == "requests" else container.limits
            if present is None and section not in created:
                ops.append({"op": "add", "path": section, "value": {}})
                created.add(section)

            ops.append({"op": "add", "path": m.path, "value": m.value})
        return ops
