import copy
from typing import Any

from ..models import PodModel, ResourceMutation
from .interface import PatchBuilder


class ReplaceObjectBuilder(PatchBuilder):
    """
    Fill the gaps on a copy of the submitted Pod and return the whole object.

    The payload is still tagged JSONPatch in the response. Only use this to
    stay compatible with webhooks that answer with the full mutated object;
    the API server itself expects the operation list from JsonPatchBuilder.
    """

    def build(
        self, pod: PodModel, mutations: list[ResourceMutation]
    ) -> dict[str, Any] | None:
        if not mutations:
            return None

        obj = copy.deepcopy(pod.raw)
        containers = obj["spec"]["containers"]
        for m in mutations:
            container = containers[m.container_index]
            if container.get("resources") is None:
                container["resources"] = {}
            if container["resources"].get(m.section) is None:
                container["resources"][m.section] = {}
            container["resources"][m.section].setdefault(m.resource, m.value)
        return obj
