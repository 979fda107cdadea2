import base64
import importlib
import json
from typing import Any, Dict

import pytest

from resource_defaults_webhook.config import ResourceDefaults, Settings, build_policy
from resource_defaults_webhook.errors import ResponseEncodeError


def make_client(
	label_key="tier",
	label_value="backend",
	label_selector="",
	defaults=None,
	patch_strategy="json-patch",
):
	app_mod = importlib.import_module("resource_defaults_webhook.app")
	settings = Settings(
		policy=build_policy(
			"prod",
			label_selector=label_selector,
			label_key=label_key if not label_selector else "",
			label_value=label_value if not label_selector else "",
			defaults=defaults
			or ResourceDefaults(cpu_request="100", memory_limit="134217728"),
		),
		patch_strategy=patch_strategy,
		app_env="test",
	)
	return app_mod.create_app(settings).test_client()


def admission_review(uid: str, pod: Any, ns: str = "prod") -> Dict[str, Any]:
	return {
		"apiVersion": "admission.k8s.io/v1",
		"kind": "AdmissionReview",
		"request": {
			"uid": uid,
			"kind": {"group": "", "version": "v1", "kind": "Pod"},
			"namespace": ns,
			"operation": "CREATE",
			"object": pod,
		},
	}


def minimal_pod(labels=None, containers=None) -> Dict[str, Any]:
	return {
		"apiVersion": "v1",
		"kind": "Pod",
		"metadata": {"name": "p1", "labels": labels or {}},
		"spec": {"containers": containers or [{"name": "app", "image": "nginx"}]},
	}


def decode_patch(resp_json: Dict[str, Any]):
	patch_b64 = resp_json["response"].get("patch")
	if not patch_b64:
		return None
	return json.loads(base64.b64decode(patch_b64).decode())


def test_namespace_mismatch_allows_without_patch():
	client = make_client()
	pod = minimal_pod(labels={"tier": "backend"})
	r = client.post("/mutate-pod", json=admission_review("u1", pod, ns="default"))
	assert r.status_code == 200
	body = r.get_json()
	assert body["response"] == {"uid": "u1", "allowed": True}


def test_label_mismatch_allows_without_patch():
	client = make_client()
	pod = minimal_pod(labels={"tier": "frontend"})
	r = client.post("/mutate-pod", json=admission_review("u2", pod))
	assert r.status_code == 200
	assert r.get_json()["response"] == {"uid": "u2", "allowed": True}


def test_match_with_empty_resources_adds_defaults():
	client = make_client()
	pod = minimal_pod(labels={"tier": "backend"})
	r = client.post("/mutate-pod", json=admission_review("u3", pod))
	assert r.status_code == 200
	body = r.get_json()
	assert body["apiVersion"] == "admission.k8s.io/v1"
	assert body["kind"] == "AdmissionReview"
	assert body["response"]["uid"] == "u3"
	assert body["response"]["allowed"] is True
	assert body["response"]["patchType"] == "JSONPatch"

	patch = decode_patch(body)
	leaves = [op for op in patch if op["path"].endswith(("/cpu", "/memory"))]
	assert leaves == [
		{"op": "add", "path": "/spec/containers/0/resources/requests/cpu", "value": "100m"},
		{"op": "add", "path": "/spec/containers/0/resources/limits/memory", "value": "128Mi"},
	]
	assert all(op["op"] == "add" for op in patch)


def test_partial_existing_resources_are_kept():
	defaults = ResourceDefaults(cpu_request="100", cpu_limit="500", memory_limit="134217728")
	client = make_client(defaults=defaults)
	pod = minimal_pod(
		labels={"tier": "backend"},
		containers=[{"name": "app", "resources": {"limits": {"cpu": "2"}}}],
	)
	r = client.post("/mutate", json=admission_review("u4", pod))
	patch = decode_patch(r.get_json())
	paths = [op["path"] for op in patch]
	assert "/spec/containers/0/resources/limits/cpu" not in paths
	assert "/spec/containers/0/resources/requests/cpu" in paths
	assert "/spec/containers/0/resources/limits/memory" in paths


def test_malformed_quantity_is_skipped_and_allowed():
	defaults = ResourceDefaults(cpu_limit="not-a-number", memory_request="67108864")
	client = make_client(defaults=defaults)
	pod = minimal_pod(labels={"tier": "backend"})
	r = client.post("/mutate-pod", json=admission_review("u5", pod))
	assert r.status_code == 200
	body = r.get_json()
	assert body["response"]["allowed"] is True
	leaves = [op for op in decode_patch(body) if op["path"].endswith(("/cpu", "/memory"))]
	assert leaves == [
		{"op": "add", "path": "/spec/containers/0/resources/requests/memory", "value": "64Mi"},
	]


def test_nothing_missing_allows_without_patch():
	client = make_client()
	pod = minimal_pod(
		labels={"tier": "backend"},
		containers=[
			{"name": "app", "resources": {"requests": {"cpu": "1"}, "limits": {"memory": "1Gi"}}}
		],
	)
	r = client.post("/mutate-pod", json=admission_review("u6", pod))
	assert r.get_json()["response"] == {"uid": "u6", "allowed": True}


def test_every_container_gets_all_four_fields():
	defaults = ResourceDefaults(
		cpu_request="250", cpu_limit="1000", memory_request="268435456", memory_limit="536870912"
	)
	client = make_client(label_selector="tier in (backend, worker)", defaults=defaults)
	containers = [{"name": "a"}, {"name": "b"}, {"name": "c", "resources": {}}]
	pod = minimal_pod(labels={"tier": "worker"}, containers=containers)
	r = client.post("/mutate-pod", json=admission_review("u7", pod))
	patch = decode_patch(r.get_json())
	leaves = [op for op in patch if op["path"].endswith(("/cpu", "/memory"))]
	assert len(leaves) == 4 * len(containers)
	values = {op["path"].split("/resources/")[1]: op["value"] for op in leaves}
	assert values == {
		"requests/cpu": "250m",
		"requests/memory": "256Mi",
		"limits/cpu": "1",
		"limits/memory": "512Mi",
	}


def test_replace_object_strategy_returns_full_pod():
	client = make_client(patch_strategy="replace-object")
	pod = minimal_pod(labels={"tier": "backend"})
	r = client.post("/mutate-pod", json=admission_review("u8", pod))
	body = r.get_json()
	assert body["response"]["patchType"] == "JSONPatch"
	obj = decode_patch(body)
	assert obj["metadata"]["name"] == "p1"
	assert obj["spec"]["containers"][0]["resources"] == {
		"requests": {"cpu": "100m"},
		"limits": {"memory": "128Mi"},
	}


def test_api_version_is_echoed():
	client = make_client()
	req = admission_review("u9", minimal_pod(labels={"tier": "frontend"}))
	req["apiVersion"] = "admission.k8s.io/v1beta1"
	r = client.post("/mutate-pod", json=req)
	assert r.get_json()["apiVersion"] == "admission.k8s.io/v1beta1"


@pytest.mark.parametrize(
	"obj",
	[
		"garbage",
		{"kind": "Pod", "spec": {"containers": "app"}},
		{"kind": "ConfigMap", "data": {}},
	],
)
def test_undecodable_pod_is_denied_with_uid(obj):
	client = make_client()
	r = client.post("/mutate-pod", json=admission_review("u10", obj))
	assert r.status_code == 200
	resp = r.get_json()["response"]
	assert resp["uid"] == "u10"
	assert resp["allowed"] is False
	assert "cannot decode pod" in resp["status"]["message"]
	assert "patch" not in resp


def test_undecodable_pod_outside_namespace_is_allowed():
	client = make_client()
	r = client.post("/mutate-pod", json=admission_review("u11", "garbage", ns="default"))
	assert r.get_json()["response"] == {"uid": "u11", "allowed": True}


@pytest.mark.parametrize(
	"data",
	[
		b"not json",
		b"",
		b"[]",
		json.dumps({"not": "admission-review"}).encode(),
		json.dumps({"request": {"namespace": "prod", "object": {}}}).encode(),
		json.dumps({"request": {"uid": "", "object": {}}}).encode(),
		b"[" * 100000,
		b'{"request": {"uid": "u", "namespace": "prod", "object": {"x": Infinity}}}',
	],
)
def test_invalid_envelope_is_client_error(data):
	client = make_client()
	r = client.post("/mutate-pod", data=data, content_type="application/json")
	assert r.status_code == 400
	body = r.get_json()
	assert "error" in body
	assert "response" not in body


def test_nan_in_pod_is_rejected_before_it_is_copied_back():
	client = make_client(patch_strategy="replace-object")
	pod = minimal_pod(labels={"tier": "backend"})
	pod["metadata"]["annotations"] = {"x": float("nan")}
	# json.dumps writes the bare NaN token a misbehaving client would send
	data = json.dumps(admission_review("u13", pod)).encode()
	assert b"NaN" in data
	r = client.post("/mutate-pod", data=data, content_type="application/json")
	assert r.status_code == 400
	assert "response" not in r.get_json()


@pytest.mark.parametrize(
	"operation,kind,obj",
	[
		("DELETE", "Pod", None),
		("CONNECT", "Pod", None),
		("CREATE", "Deployment", {"kind": "Deployment", "spec": {}}),
	],
)
def test_other_operations_and_kinds_are_allowed_untouched(operation, kind, obj):
	client = make_client()
	req = admission_review("u14", obj)
	req["request"]["operation"] = operation
	req["request"]["kind"]["kind"] = kind
	r = client.post("/mutate-pod", json=req)
	assert r.status_code == 200
	assert r.get_json()["response"] == {"uid": "u14", "allowed": True}


def test_update_is_defaulted_like_create():
	client = make_client()
	req = admission_review("u15", minimal_pod(labels={"tier": "backend"}))
	req["request"]["operation"] = "UPDATE"
	r = client.post("/mutate-pod", json=req)
	assert r.get_json()["response"]["patchType"] == "JSONPatch"


def test_encode_failure_is_server_error(monkeypatch: pytest.MonkeyPatch):
	client = make_client()
	routes_mod = importlib.import_module("resource_defaults_webhook.routes")

	def _fail(review):
		raise ResponseEncodeError("boom")

	monkeypatch.setattr(routes_mod, "encode_review", _fail)
	r = client.post("/mutate-pod", json=admission_review("u12", minimal_pod()))
	assert r.status_code == 500


def test_health_ok():
	client = make_client()
	r = client.get("/health")
	assert r.status_code == 200
	assert r.get_json()["status"] == "healthy"
