import logging

from flask import Blueprint, Response, jsonify, request

from .config import Settings
from .errors import EnvelopeDecodeError, ObjectDecodeError, ResponseEncodeError
from .helpers import (
    encode_review,
    make_admission_response,
    matches_policy,
    namespace_in_scope,
    plan_resource_defaults,
)
from .models import decode_review
from .patchers import get_patch_builder

log = logging.getLogger("resource-defaults-webhook")


def create_routes(settings: Settings) -> Blueprint:
    bp = Blueprint("webhook", __name__)
    policy = settings.policy
    builder = get_patch_builder(settings.patch_strategy)

    @bp.route("/health", methods=["GET"])
    def health():
        return {"status": "healthy"}, 200

    @bp.route("/mutate-pod", methods=["POST"])
    @bp.route("/mutate", methods=["POST"])
    def mutate():
        try:
            admission = decode_review(request.get_data())
        except EnvelopeDecodeError as e:
            log.warning("Invalid AdmissionReview payload: %s", e)
            return jsonify({"error": str(e)}), 400

        req = admission.request
        uid = req.uid
        api_version = admission.api_version

        try:
            if not req.mutable():
                log.debug(
                    "uid=%s operation=%s kind=%s not defaulted",
                    uid,
                    req.operation,
                    req.kind,
                )
                review = make_admission_response(uid, True, api_version=api_version)
                return _reply(encode_review(review))

            if not namespace_in_scope(req.namespace, policy):
                log.debug("uid=%s namespace=%s out of scope", uid, req.namespace)
                review = make_admission_response(uid, True, api_version=api_version)
                return _reply(encode_review(review))

            try:
                pod = req.pod()
            except ObjectDecodeError as e:
                log.info("Denying uid=%s: cannot decode pod: %s", uid, e.message)
                review = make_admission_response(
                    uid,
                    False,
                    message=f"cannot decode pod: {e.message}",
                    api_version=api_version,
                )
                return _reply(encode_review(review))

            if not matches_policy(pod, policy):
                log.info(
                    "Pod %s/%s does not match label policy; allowing without mutation",
                    pod.namespace,
                    pod.name,
                )
                review = make_admission_response(uid, True, api_version=api_version)
                return _reply(encode_review(review))

            mutations = plan_resource_defaults(pod, policy.defaults)
            patch = builder.build(pod, mutations)
            log.info(
                "Pod %s/%s uid=%s: filling %d resource field(s)",
                pod.namespace,
                pod.name,
                uid,
                len(mutations),
            )
            review = make_admission_response(
                uid, True, patch, api_version=api_version
            )
            return _reply(encode_review(review))
        except ResponseEncodeError:
            log.error("Error encoding response for uid=%s", uid, exc_info=True)
            return jsonify({"error": "failed to encode AdmissionReview response"}), 500

    return bp


def _reply(body: bytes) -> Response:
    return Response(body, status=200, mimetype="application/json")
