import logging
import os
from dataclasses import dataclass, field
from typing import Literal

from .errors import QuantityParseError, SelectorConfigError
from .quantity import cpu_quantity, describe_rejected, memory_quantity
from .selectors import LabelSelector, parse_selector, validate_label_key, validate_label_value

log = logging.getLogger("resource-defaults-webhook")

PatchStrategy = Literal["json-patch", "replace-object"]


def _get_env(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val is not None and val != "" else default


def _parse_int(name: str, default: int) -> int:
    val = _get_env(name, str(default))
    try:
        return int(val)
    except ValueError:
        return default


def _parse_patch_strategy(
    name: str, default: PatchStrategy = "json-patch"
) -> PatchStrategy:
    val = _get_env(name, default).lower()
    return val if val in ("json-patch", "replace-object") else default


@dataclass(frozen=True)
class ResourceDefaults:
    # Integer millicores / bytes; empty disables the field
    cpu_request: str = ""
    cpu_limit: str = ""
    memory_request: str = ""
    memory_limit: str = ""

    def configured(self) -> bool:
        return any(
            (self.cpu_request, self.cpu_limit, self.memory_request, self.memory_limit)
        )

    def unusable(self) -> list[tuple[str, str]]:
        """(field, reason) for each configured value that will never be applied."""
        problems = []
        for name, raw, encode, unit in (
            ("cpu_request", self.cpu_request, cpu_quantity, "millicore"),
            ("cpu_limit", self.cpu_limit, cpu_quantity, "millicore"),
            ("memory_request", self.memory_request, memory_quantity, "byte"),
            ("memory_limit", self.memory_limit, memory_quantity, "byte"),
        ):
            if not raw:
                continue
            try:
                encode(raw)
            except QuantityParseError:
                problems.append((name, describe_rejected(raw, unit)))
        return problems


@dataclass(frozen=True)
class Policy:
    namespace: str = ""
    selector: LabelSelector | None = None
    label_key: str = ""
    label_value: str = ""
    defaults: ResourceDefaults = field(default_factory=ResourceDefaults)


def build_policy(
    namespace: str,
    label_selector: str = "",
    label_key: str = "",
    label_value: str = "",
    defaults: ResourceDefaults | None = None,
) -> Policy:
    """Validate the label policy once so requests never see a broken selector."""
    if label_selector and label_key:
        raise SelectorConfigError(
            "configure either a label selector or a label key/value pair, not both"
        )
    if label_value and not label_key:
        raise SelectorConfigError("a label value was configured without a label key")
    selector = parse_selector(label_selector) if label_selector else None
    if label_key:
        validate_label_key(label_key)
        validate_label_value(label_value)
    return Policy(
        namespace=namespace,
        selector=selector,
        label_key=label_key,
        label_value=label_value,
        defaults=defaults or ResourceDefaults(),
    )


@dataclass(frozen=True)
class Settings:
    policy: Policy = field(default_factory=Policy)
    patch_strategy: PatchStrategy = "json-patch"
    app_env: str = "production"

    # Server
    port: int = 8443
    tls_cert_file: str = "/tls/tls.crt"
    tls_key_file: str = "/tls/tls.key"


def load() -> Settings:
    defaults = ResourceDefaults(
        cpu_request=_get_env("CPU_REQUEST", ""),
        cpu_limit=_get_env("CPU_LIMIT", ""),
        memory_request=_get_env("MEMORY_REQUEST", ""),
        memory_limit=_get_env("MEMORY_LIMIT", ""),
    )
    for name, reason in defaults.unusable():
        log.warning("Default %s will be ignored: %s", name, reason)

    return Settings(
        policy=build_policy(
            namespace=_get_env("NAMESPACE", ""),
            label_selector=_get_env("LABEL_SELECTOR", "").strip(),
            label_key=_get_env("LABEL_KEY", ""),
            label_value=_get_env("LABEL_VALUE", ""),
            defaults=defaults,
        ),
        patch_strategy=_parse_patch_strategy("PATCH_STRATEGY", "json-patch"),
        app_env=_get_env("APP_ENV", "production"),
        port=_parse_int("PORT", 8443),
        tls_cert_file=_get_env("TLS_CERT_FILE", "/tls/tls.crt"),
        tls_key_file=_get_env("TLS_KEY_FILE", "/tls/tls.key"),
    )


# Singleton settings for app usage (tests build their own)
settings: Settings = load()
