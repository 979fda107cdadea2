from typing import Any

from ..models import PodModel, ResourceMutation


class PatchBuilder:
    def build(self, pod: PodModel, mutations: list[ResourceMutation]) -> Any | None:
        """
        Return the JSON-serializable patch payload for the mutations, or None
        when there is nothing to change.
        """
        raise NotImplementedError
