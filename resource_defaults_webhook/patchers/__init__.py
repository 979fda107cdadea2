from .interface import PatchBuilder
from .json_patch import JsonPatchBuilder
from .replace_object import ReplaceObjectBuilder


def get_patch_builder(strategy: str) -> PatchBuilder:
    if strategy == "replace-object":
        return ReplaceObjectBuilder()
    return JsonPatchBuilder()


__all__ = [
    "PatchBuilder",
    "JsonPatchBuilder",
    "ReplaceObjectBuilder",
    "get_patch_builder",
]
